"""Info command for facepass CLI."""

from facepass.config import FacepassConfig
from facepass.geofence import format_distance


def load_config(path):
    if path:
        return FacepassConfig.from_yaml(path)
    return FacepassConfig()


def run_info(args):
    """Show the effective configuration."""
    config = load_config(getattr(args, "config", None))

    print("facepass - Configuration")
    print("=" * 60)
    _print_version_info()

    emb = config.embedding
    print("\n[Embedding]")
    print(f"  strategy:    {emb.strategy}")
    if emb.strategy == "learned":
        print(f"  model:       {emb.model_name} ({emb.input_size}x{emb.input_size} -> {emb.embed_dim})")
        print(f"  device:      {emb.device}")
    print(f"  threshold:   {config.threshold:.2f}")

    reg = config.registration
    print("\n[Registration]")
    print(f"  poses:       {', '.join(reg.poses)}")
    print(f"  hold:        {reg.hold_seconds:.1f}s")
    print(f"  center:      |angle| < {reg.center_max_deg:.0f} deg")
    print(f"  turn:        {reg.turn_min_deg:.0f} - {reg.max_turn_deg:.0f} deg")

    geo = config.geofence
    print("\n[Geofence]")
    print(f"  office:      {geo.office_lat:.6f}, {geo.office_lng:.6f}")
    print(f"  radius:      {format_distance(geo.radius_m)}")

    att = config.attendance
    print("\n[Attendance]")
    print(f"  max retries: {att.max_retries}")
    print(f"  late after:  {att.late_after}")
    return 0


def _print_version_info():
    try:
        from importlib.metadata import version
        print(f"  facepass: {version('facepass')}")
    except Exception:
        print("  facepass: (version not available)")

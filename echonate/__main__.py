"""
EchoNate Entry Point — Run with: python -m echonate

Usage:
    python -m echonate [OPTIONS]

Options:
    --base-dir DIR              State and config directory
    --host HOST / --port PORT   Listen address for the HTTP control surface
    --confirmation-timeout S    Seconds to wait for a user confirmation
    --log-level LEVEL
"""

import sys


def main():
    """Main entry point for EchoNate."""
    from echonate.proxy.orchestrator import main as control_plane_main
    return control_plane_main()


if __name__ == "__main__":
    sys.exit(main() or 0)

#!/usr/bin/env python3
"""
EchoNate Management CLI
=========================

Command-line front end for a running control plane. Everything goes
through the HTTP API, so each command is gated and audited exactly like a
request from the browser layer.

Usage:
  python echonate_cli.py status                       # Mode, risk, audit health
  python echonate_cli.py mode research "engagement 42" # Change mode (justified)
  python echonate_cli.py config show                  # Live settings
  python echonate_cli.py config set captcha_mode assisted
  python echonate_cli.py export --out audit.json      # Export the audit log
  python echonate_cli.py clear-audit --yes            # Wipe the audit log
  python echonate_cli.py pending                      # Open confirmations
  python echonate_cli.py confirm <id>                 # Answer a confirmation
  python echonate_cli.py decline <id>
  python echonate_cli.py cancel <id>

Environment:
  ECHONATE_URL         Control plane URL (default http://127.0.0.1:11445)
  ECHONATE_API_SECRET  Shared secret printed by the server at startup
"""

import argparse
import json
import os
import shutil
import sys
from pathlib import Path

import requests

# Resolve project root (one level up from tools/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from echonate.proxy.client import ControlPlaneClient


# =============================================================================
# TERMINAL FORMATTING
# =============================================================================

class Colors:
    """ANSI color codes. Disabled by NO_COLOR or a non-tty stdout."""
    ENABLED = sys.stdout.isatty() and not os.environ.get('NO_COLOR')

    @classmethod
    def _c(cls, code: str, text: str) -> str:
        return f"\033[{code}m{text}\033[0m" if cls.ENABLED else text

    @classmethod
    def bold(cls, t): return cls._c("1", t)
    @classmethod
    def dim(cls, t): return cls._c("2", t)
    @classmethod
    def green(cls, t): return cls._c("32", t)
    @classmethod
    def red(cls, t): return cls._c("31", t)
    @classmethod
    def yellow(cls, t): return cls._c("33", t)
    @classmethod
    def cyan(cls, t): return cls._c("36", t)


OK = Colors.green("✓")
FAIL = Colors.red("✗")
WARN = Colors.yellow("⚠")
INFO = Colors.cyan("ℹ")

_RISK_COLORS = {'LOW': Colors.green, 'MEDIUM': Colors.yellow, 'HIGH': Colors.red}


def heading(text: str):
    width = min(shutil.get_terminal_size().columns, 72)
    print(f"\n{Colors.bold(text)}")
    print(Colors.dim("─" * width))


def table_row(label: str, value: str, status: str = ""):
    label_col = f"  {label:<30}"
    if status:
        print(f"{label_col} {status} {value}")
    else:
        print(f"{label_col} {value}")


def _client() -> ControlPlaneClient:
    return ControlPlaneClient(
        os.environ.get('ECHONATE_URL', 'http://127.0.0.1:11445'),
        api_secret=os.environ.get('ECHONATE_API_SECRET', ''),
    )


def _report(result: dict) -> bool:
    """Print a dispatch response. Returns True on success."""
    if result.get('success'):
        print(f"  {OK} {result.get('outcome')}")
        return True
    print(f"  {FAIL} {result.get('outcome')}: {result.get('error')} "
          f"{Colors.dim('(' + str(result.get('error_kind')) + ')')}")
    return False


def _parse_value(raw: str):
    """CLI strings → JSON scalars, so 'false' reaches the server as a bool."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_status(args):
    status = _client().status()
    heading(f"EchoNate Control Plane v{status['version']}")
    risk = status['risk']
    color = _RISK_COLORS.get(risk['level'], str)
    table_row("Mode", Colors.bold(status['mode']))
    table_row("Risk", f"{color(risk['level'])} (score {risk['score']})")
    table_row("Terms accepted", str(status['terms_accepted']),
              OK if status['terms_accepted'] else WARN)

    audit = status['audit']
    table_row("Audit events", str(audit['events']))
    table_row("Audit logging", "on" if audit['enabled'] else "off",
              OK if audit['enabled'] else WARN)
    table_row("Audit storage", audit['storage'])
    if audit['chain_verified']:
        table_row("Audit chain", "verified", OK)
    else:
        table_row("Audit chain", f"BROKEN at sequence {audit['first_broken_sequence']}", FAIL)

    table_row("Stored credentials", str(len(status['credentials'])))
    table_row("Pending confirmations", str(status['pending_confirmations']),
              WARN if status['pending_confirmations'] else "")
    effects = status['effects']
    if effects['stuck_workers']:
        table_row("Stuck effect workers",
                  f"{effects['stuck_workers']}/{effects['max_workers']}", WARN)

    heading("Capabilities")
    for action, cap in status['capabilities'].items():
        marker = Colors.yellow(" (override)") if cap['overridden'] else ""
        table_row(action, f"{cap['level']:<10} needs {cap['required_mode']}{marker}")

    for warning in status['warnings']:
        print(f"  {WARN} {warning}")
    return True


def cmd_mode(args):
    heading(f"Change mode → {args.mode}")
    result = _client().change_mode(args.mode, args.justification)
    if _report(result):
        data = result['data']
        print(f"  {data['from']} → {Colors.bold(data['to'])}, risk {data['risk']['level']}")
    return result.get('success')


def cmd_config(args):
    subcmd = args.config_command or 'show'
    client = _client()

    if subcmd == 'show':
        heading("Settings")
        for key, value in client.status()['settings'].items():
            print(f"    {key:<25} {Colors.dim(json.dumps(value))}")
        return True

    heading("Update Setting")
    result = client.update_config(args.key, _parse_value(args.value))
    if _report(result):
        data = result['data']
        print(f"  {args.key}: {Colors.red(json.dumps(data['previous']))} → "
              f"{Colors.green(json.dumps(data['value']))}")
        print(f"  {INFO} Risk now {data['risk']['level']} (score {data['risk']['score']})")
    return result.get('success')


def cmd_export(args):
    result = _client().export_audit()
    if not result.get('success'):
        return _report(result)
    export = result['data']
    text = json.dumps(export, indent=2)
    if args.out:
        Path(args.out).write_text(text, encoding='utf-8')
        print(f"  {OK} {export['event_count']} events written to {args.out}")
    else:
        print(text)
    if not export['integrity']['verified']:
        print(f"  {FAIL} Chain broken at sequence "
              f"{export['integrity']['first_broken_sequence']}", file=sys.stderr)
    return True


def cmd_clear_audit(args):
    heading("Clear Audit Log")
    if not args.yes:
        confirm = input("  Type 'CLEAR' to wipe the audit log: ").strip()
        if confirm != 'CLEAR':
            print("  Cancelled.")
            return False
    result = _client().clear_audit(True)
    if result.get('data', {}).get('cleared'):
        print(f"  {OK} Audit log cleared")
        return True
    print(f"  {FAIL} Audit log not cleared")
    return False


def cmd_pending(args):
    heading("Pending Confirmations")
    pending = _client().pending()
    if not pending:
        print(f"  {INFO} Nothing waiting")
        return True
    for item in pending:
        print(f"\n  {Colors.bold(item['id'])}  {Colors.dim(item['created'])}")
        print(f"    {item['message']}")
        for k, v in item.get('context', {}).items():
            print(f"    {k:<12} {Colors.dim(json.dumps(v))}")
    return True


def _answer(choice):
    def run(args):
        client = _client()
        result = getattr(client, choice)(args.confirmation_id)
        if result.get('status') == choice:
            print(f"  {OK} {args.confirmation_id}: {choice}")
            return True
        print(f"  {FAIL} No pending confirmation {args.confirmation_id}")
        return False
    return run


# =============================================================================
# ARGUMENT PARSER
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='echonate_cli.py',
        description='EchoNate Management CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  echonate_cli.py status
  echonate_cli.py mode advanced "assist with checkout flow"
  echonate_cli.py config set form_auto_submit true
  echonate_cli.py export --out audit.json
        """
    )
    sub = parser.add_subparsers(dest='command')

    sub.add_parser('status', help='Mode, risk and audit health')

    mode_p = sub.add_parser('mode', help='Change mode')
    mode_p.add_argument('mode', choices=['standard', 'advanced', 'research'])
    mode_p.add_argument('justification', help='Why the change is needed')

    cfg_p = sub.add_parser('config', help='Live settings')
    cfg_sub = cfg_p.add_subparsers(dest='config_command')
    cfg_sub.add_parser('show', help='Show settings')
    set_c = cfg_sub.add_parser('set', help='Update a setting')
    set_c.add_argument('key', help='Setting name')
    set_c.add_argument('value', help='New value (JSON scalar)')

    export_p = sub.add_parser('export', help='Export the audit log')
    export_p.add_argument('--out', help='Write to file instead of stdout')

    clear_p = sub.add_parser('clear-audit', help='Wipe the audit log')
    clear_p.add_argument('--yes', action='store_true', help='Skip the prompt')

    sub.add_parser('pending', help='List open confirmations')
    for choice in ('confirm', 'decline', 'cancel'):
        p = sub.add_parser(choice, help=f'{choice.capitalize()} a pending confirmation')
        p.add_argument('confirmation_id')

    return parser


# =============================================================================
# MAIN
# =============================================================================

def main():
    parser = build_parser()
    args = parser.parse_args()

    dispatch = {
        'status': cmd_status,
        'mode': cmd_mode,
        'config': cmd_config,
        'export': cmd_export,
        'clear-audit': cmd_clear_audit,
        'pending': cmd_pending,
        'confirm': _answer('confirm'),
        'decline': _answer('decline'),
        'cancel': _answer('cancel'),
    }

    handler = dispatch.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return 0 if handler(args) else 1
    except PermissionError as e:
        print(f"  {FAIL} {e}. Set ECHONATE_API_SECRET.")
    except requests.exceptions.RequestException as e:
        print(f"  {FAIL} Control plane unreachable: {e}")
    except KeyboardInterrupt:
        print(f"\n  {Colors.dim('Interrupted.')}")
    return 1


if __name__ == '__main__':
    sys.exit(main())

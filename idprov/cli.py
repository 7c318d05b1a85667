"""Operator command line for provisioning and consistency checks.

Uses the same settings and store clients as the web application.
"""
from __future__ import annotations
import argparse
import sys
from typing import Optional, Sequence

from idprov.config import load_settings
from idprov.logging_config import configure_logging


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="idprov", description="Identity provisioning helper")
    parser.add_argument("--operator", default="cli", help="Operator identifier for audit logs (default: cli)")

    sub = parser.add_subparsers(dest="cmd")

    reg = sub.add_parser("register", help="Run the account creation saga")
    reg.add_argument("--username", required=True)
    reg.add_argument("--password", required=True)
    reg.add_argument("--phone", required=True, help="Phone number, digits with optional leading +")
    reg.add_argument("--given", required=True)
    reg.add_argument("--family", required=True)
    reg.add_argument("--external-ref", required=True)

    sync = sub.add_parser("sync-attribute", help="Update an attribute in both stores")
    sync.add_argument("--username", required=True)
    sync.add_argument("--field", default="given_name")
    sync.add_argument("--value", required=True)

    chk = sub.add_parser("check", help="Report whether both stores agree about an identity")
    chk.add_argument("--username", required=True)

    sub.add_parser("verify-audit", help="Verify audit log signatures")
    sub.add_parser("orphans", help="List credential records left behind by failed compensations")
    return parser


def main(argv: Optional[Sequence[str]] = None, services=None) -> int:
    """Command-line entry point. Returns the process exit code."""
    parser = _parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return 0

    cfg = load_settings()
    configure_logging(cfg.log_level)

    if args.cmd == "verify-audit":
        from idprov.core.audit import AuditTrail

        total, valid = AuditTrail(cfg.audit_log_dir, cfg.audit_log_signing_key).verify()
        print(f"Audit log: {valid}/{total} events with valid signatures")
        return 0 if total == valid else 1

    if args.cmd == "orphans":
        from idprov.core.audit import AuditTrail

        orphans = AuditTrail(cfg.audit_log_dir, cfg.audit_log_signing_key).orphans()
        for event in orphans:
            details = event.get("details") or {}
            print(f"{event.get('username')}\t{event.get('timestamp')}\t"
                  f"failed_step={details.get('failed_step')}\tcorrelation_id={details.get('correlation_id')}")
        return 1 if orphans else 0

    if services is None:
        from idprov.flask_app import build_services

        services = build_services(cfg)

    if args.cmd == "register":
        from idprov.core.models import ProvisioningRequest
        from idprov.core.provisioning_service import ProvisioningSaga

        saga = ProvisioningSaga(services.credentials, services.profiles, audit=services.audit, operator=args.operator)
        result = saga.provision(ProvisioningRequest(
            username=args.username,
            password=args.password,
            phone_number=args.phone,
            given_name=args.given,
            family_name=args.family,
            external_ref=args.external_ref,
        ))
        if result.ok:
            print(result.external_ref)
            return 0
        print(f"[register] {result.error_type.value}: {result.reason}", file=sys.stderr)
        if result.compensation_error:
            print(f"[register] {result.compensation_error_type.value}: orphaned credential for '{result.username}': "
                  f"{result.compensation_error}", file=sys.stderr)
        return 1

    if args.cmd == "sync-attribute":
        from idprov.core.attribute_sync import AttributeSync

        result = AttributeSync(services.credentials, services.profiles, audit=services.audit,
                               operator=args.operator).sync(args.username, args.field, args.value)
        if result.ok:
            print(result.record)
            return 0
        print(f"[sync-attribute] {result.error_type.value}: {result.reason}", file=sys.stderr)
        return 1

    if args.cmd == "check":
        from idprov.core.consistency import Consistency, check_identity

        status = check_identity(services.credentials, services.profiles, args.username)
        print(status.value)
        return 0 if status in (Consistency.CONSISTENT, Consistency.ABSENT) else 2

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())

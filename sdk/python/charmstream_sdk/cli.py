"""
Command-line entry point: ``charmstream create|claim|status|ledger``
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import get_settings
from .exceptions import CharmStreamError, ExternalServiceError
from .flows import CreateParams, FlowReceipt, StreamFlows, parse_outpoint
from .ledger import OutpointLedger
from .utils import Utils


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='charmstream',
        description='Create and claim time-vested Bitcoin payment streams.',
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='enable debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    create = sub.add_parser('create', help='create a new stream')
    create.add_argument('--genesis-utxo', required=True, help='fresh outpoint (txid:vout) to spend')
    create.add_argument('--amount', type=int, required=True, help='stream amount in sats')
    create.add_argument('--duration', type=int, required=True, help='vesting duration in seconds')
    create.add_argument('--stream-address', required=True, help='address holding the stream output')
    create.add_argument('--beneficiary-address', help='payout address (default: stream address)')
    create.add_argument('--funding-utxo', help='separate fee outpoint (default: genesis UTXO)')
    create.add_argument('--change-address', help='fee change address (default: stream address)')
    create.add_argument('--app-bin', default='', help='compiled app binary')
    create.add_argument('--app-vk', default='', help='app verification key')

    claim = sub.add_parser('claim', help='claim vested sats')
    claim.add_argument('--amount', type=int, required=True,
                       help='new cumulative claimed amount in sats')
    claim.add_argument('--funding-utxo', required=True, help='fee outpoint (txid:vout)')
    claim.add_argument('--change-address', required=True, help='fee change address')
    claim.add_argument('--stream-utxo', help='stream outpoint (default: saved head)')

    status = sub.add_parser('status', help='show vesting status of the saved stream')
    status.add_argument('--now', type=int, help='evaluate at this Unix timestamp')

    ledger = sub.add_parser('ledger', help='inspect the used-outpoint ledger')
    ledger.add_argument('action', choices=('list', 'check'))
    ledger.add_argument('outpoint', nargs='?', help='outpoint to check (txid:vout)')

    return parser


def print_receipt(receipt: FlowReceipt, explorer_url: str) -> None:
    print(f"TXID: {receipt.txid}")
    print(f"Stream UTXO: {receipt.stream_outpoint}")
    print(f"claimed_amount: {receipt.head.claimed_amount}")
    print(f"remaining_amount: {receipt.accepted.remaining_amount}")
    print(f"View on explorer: {Utils.explorer_link(explorer_url, receipt.txid)}")


def run(args: argparse.Namespace) -> int:
    settings = get_settings()

    if args.command == 'ledger':
        ledger = OutpointLedger(settings.ledger_path)
        if args.action == 'list':
            for key in ledger.entries():
                print(key)
            return 0
        outpoint = parse_outpoint(args.outpoint, "Outpoint")
        ledger.check_unused(outpoint)
        print(f"{outpoint} is unused")
        return 0

    flows = StreamFlows.from_settings(settings)
    try:
        if args.command == 'status':
            status = flows.status(now=args.now)
            print(f"vested: {status.vested} sats")
            print(f"claimed: {status.claimed} sats")
            print(f"claimable: {status.claimable} sats")
            print(f"remaining: {status.remaining} sats")
            if status.exhausted:
                print("stream fully claimed")
            elif status.ends_in:
                print(f"fully vested in: {Utils.seconds_to_readable(status.ends_in)}")
            return 0

        if args.command == 'create':
            receipt = flows.create(CreateParams(
                genesis_utxo=args.genesis_utxo,
                total_amount=args.amount,
                duration=args.duration,
                stream_address=args.stream_address,
                beneficiary_address=args.beneficiary_address,
                funding_utxo=args.funding_utxo,
                change_address=args.change_address,
                app_bin=args.app_bin,
                app_vk=args.app_vk,
            ))
        else:
            receipt = flows.claim(
                args.amount,
                funding_utxo=args.funding_utxo,
                change_address=args.change_address,
                stream_utxo=args.stream_utxo,
            )
        print_receipt(receipt, settings.explorer_url)
        return 0
    finally:
        flows.node.close()
        flows.prover.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    try:
        return run(args)
    except CharmStreamError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if isinstance(e, ExternalServiceError) and e.diagnostics:
            print(f"  request sha256: {e.diagnostics.request_hash}", file=sys.stderr)
            print(f"  artifacts: {get_settings().build_dir}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())

"""Command line access to the print server.

Usage:
	printer-connection status
	printer-connection printers --json
	printer-connection print label.png --printer "Zebra ZD420"
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from printer_connection.config import CONFIG
from printer_connection.connection.service import PrinterConnection
from printer_connection.exceptions import PrinterConnectionError


def build_parser() -> argparse.ArgumentParser:
	"""Build argument parser with all commands."""
	parser = argparse.ArgumentParser(
		prog='printer-connection',
		description='Talk to the local print server',
		formatter_class=argparse.RawDescriptionHelpFormatter,
	)
	parser.add_argument('--url', default=None, help=f'Print server URL (default: {CONFIG.PRINTER_CONNECTION_URL})')
	parser.add_argument('--timeout', type=float, default=5.0, help='Seconds to wait for the connection')
	parser.add_argument('--json', action='store_true', help='Print machine-readable JSON')

	subparsers = parser.add_subparsers(dest='command', required=True)
	subparsers.add_parser('status', help='Show the print server status')
	subparsers.add_parser('printers', help='List available printers')

	print_parser = subparsers.add_parser('print', help='Print an image file')
	print_parser.add_argument('image', help='Path to the image file')
	print_parser.add_argument('--printer', required=True, help='Target printer name')

	return parser


def _print_json(data: Any) -> None:
	print(json.dumps(data, indent=2, default=str))


async def run_command(args: argparse.Namespace) -> int:
	# a one-shot command must not sit in reconnect loops
	connection = PrinterConnection(args.url, connect_timeout=args.timeout, max_reconnect_attempts=0)
	try:
		if not await connection.initialize():
			print(f'❌ Could not connect to the print server at {connection.url}', file=sys.stderr)
			return 1

		if args.command == 'status':
			snapshot = await connection.check_status()
			if args.json:
				_print_json(connection.get_system_status().model_dump(by_alias=True, mode='json'))
			else:
				state = '✅ ready' if snapshot.ready else '⏳ not ready'
				print(f'{state} - {snapshot.printers_count} printer(s)')
				if snapshot.error:
					print(f'⚠️ {snapshot.error}')

		elif args.command == 'printers':
			printers = await connection.get_printers()
			if args.json:
				_print_json(printers)
			elif not printers:
				print('No printers found')
			else:
				for printer in printers:
					name = printer.get('name', printer) if isinstance(printer, dict) else printer
					print(f'🖨️ {name}')

		elif args.command == 'print':
			message = await connection.print_image(args.image, args.printer, connect_timeout=args.timeout)
			if args.json:
				_print_json({'success': True, 'message': message})
			else:
				print(f'✅ {message}')

		return 0

	except PrinterConnectionError as e:
		if args.json:
			_print_json({'success': False, 'error': type(e).__name__, 'message': e.message})
		else:
			print(f'❌ {e.message}', file=sys.stderr)
		return 1
	finally:
		await connection.close()
		await connection.event_bus.stop(clear=True, timeout=5)


def main(argv: list[str] | None = None) -> int:
	parser = build_parser()
	args = parser.parse_args(argv)
	try:
		return asyncio.run(run_command(args))
	except KeyboardInterrupt:
		return 130


if __name__ == '__main__':
	sys.exit(main())

"""
ledgerdb command line entry point.

Usage:
    ledgerdb [--config config.json] [--idl idl.json] addresses <owner> [--table NAME]
    ledgerdb tables <owner>
    ledgerdb rows <owner> [--table NAME [--ext ROW_ID EXT_NAME]] [--max-tx N] [--limit N] [--fold]
    ledgerdb session <sessionAddress> [--output FILE]

Results are printed as JSON on stdout. Terminal errors (not found, malformed
descriptor, no chunks, invalid key, unreachable endpoint) print {"error": ...}
and exit with 1.
Ctrl+C during a scan stops it and prints the partial result.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

import aiohttp
import orjson

from ledgerdb.config import loadConfig
from ledgerdb.core.addresses import tableAddress, instructionTableAddress, extTableAddress, rootAddress
from ledgerdb.core.errors import LedgerDbError
from ledgerdb.core.reader import LedgerDbReader, loadIdl
from ledgerdb.core.rpc import JsonRpcLedgerClient
from ledgerdb.core.seed import deriveSeedHex
from ledgerdb.logging import getLogger, configureLogging


def buildParser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='ledgerdb', description='Read a relational database kept in ledger transactions')
    parser.add_argument('--config', default=None, help='Path to config file (defaults when omitted)')
    parser.add_argument('--rpc', default=None, help='RPC endpoint (overrides config)')
    parser.add_argument('--program-id', default=None, help='Table program id (overrides config)')
    parser.add_argument('--idl', default=None, help='Anchor IDL path or URL (overrides config)')
    parser.add_argument('--log-level', default=None, help='Log level (DEBUG, INFO, ...)')
    parser.add_argument('--no-log-file', action='store_true', help='Log to stderr only')

    sub = parser.add_subparsers(dest='command', required=True)

    addresses = sub.add_parser('addresses', help='Derived addresses for an owner')
    addresses.add_argument('owner')
    addresses.add_argument('--table', default=None, help='Also derive this table\'s addresses')

    tables = sub.add_parser('tables', help='Tables registered on the owner\'s root')
    tables.add_argument('owner')

    rows = sub.add_parser('rows', help='Reconstruct rows from transaction history')
    rows.add_argument('owner')
    rows.add_argument('--table', default=None, help='Only this table (default: recent rows of all tables)')
    rows.add_argument('--ext', nargs=2, metavar=('ROW_ID', 'EXT_NAME'), default=None,
                      help='Extension table of one row (needs --table)')
    rows.add_argument('--max-tx', type=int, default=None, help='Maximum transactions to scan')
    rows.add_argument('--limit', type=int, default=None, help='Maximum rows returned')
    rows.add_argument('--fold', action='store_true', help='Apply edits/deletes to their target rows')

    session = sub.add_parser('session', help='Reconstruct a chunked upload session')
    session.add_argument('sessionAddress')
    session.add_argument('--output', default=None, help='Write the decoded payload to this file')

    return parser


def printJson(obj):
    sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS))
    sys.stdout.buffer.write(b'\n')
    sys.stdout.flush()


def addressesCommand(args, config) -> dict:
    """Pure derivation, no network"""
    reader = LedgerDbReader(config, client=None)
    out = reader.getAddresses(args.owner)
    if args.table:
        root = rootAddress(args.owner, config.programId)
        out['table'] = {
            'name': args.table,
            'seedHex': deriveSeedHex(args.table),
            'tableAddress': str(tableAddress(root, args.table, config.programId)),
            'instructionAddress': str(instructionTableAddress(root, args.table, config.programId))
        }
    return out


async def runCommand(args, config, log) -> dict:
    cancelEvent = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancelEvent.set)
    except NotImplementedError:
        log.debug("[Main] SIGINT handler unavailable on this platform")

    schema = await loadIdl(config.idlPath, config) if config.idlPath else None
    if schema is None and args.command in ('tables', 'rows'):
        log.warning("[Main] No IDL configured; row reads return empty results")

    async with JsonRpcLedgerClient(config.rpcEndpoint, config.commitment, config.requestTimeoutSeconds,
                                   config.retryAttempts, config.retryDelaySeconds) as client:
        reader = LedgerDbReader(config, client, schema)

        if args.command == 'tables':
            return await reader.readTableList(args.owner)

        if args.command == 'rows':
            if args.table and args.ext:
                rowId, extName = args.ext
                rows = await reader.readExtRows(args.owner, args.table, rowId, extName, maxTx=args.max_tx,
                                                perTableLimit=args.limit, foldEdits=args.fold,
                                                cancelEvent=cancelEvent)
                address = extTableAddress(rootAddress(args.owner, config.programId), args.table, rowId,
                                          extName, config.programId)
                return {'table': args.table, 'rowId': rowId, 'extName': extName,
                        'tableAddress': str(address), 'rows': rows}
            if args.table:
                rows = await reader.readRowsByTable(args.owner, args.table, maxTx=args.max_tx,
                                                    perTableLimit=args.limit, foldEdits=args.fold,
                                                    cancelEvent=cancelEvent)
                return {'table': args.table, 'rows': rows}
            return await reader.readRecentRows(args.owner, maxTx=args.max_tx, cancelEvent=cancelEvent)

        result = await reader.readSession(args.sessionAddress, cancelEvent)
        if args.output:
            Path(args.output).write_bytes(result.decoded)
            log.info("[Main] Payload written", path=args.output, size=len(result.decoded))
        return result.toDict()


def main(argv=None) -> int:
    """Main entry point"""
    parser = buildParser()
    args = parser.parse_args(argv)
    if args.command == 'rows' and args.ext and not args.table:
        parser.error("--ext needs --table")

    # Config first (its logging section configures the logger)
    config, usedDefaults = loadConfig(args.config)
    logSettings = config.logging
    configureLogging(logDir=logSettings.get('logDir'), maxBytes=logSettings.get('maxBytes', 10_000_000),
                     backupCount=logSettings.get('backupCount', 5), console=logSettings.get('console', True),
                     file=logSettings.get('file', True) and not args.no_log_file,
                     level=args.log_level or logSettings.get('level', 'INFO'), utc=logSettings.get('utc', False))
    log = getLogger()
    if args.config and usedDefaults:
        # reload with a logger so the failure reason is recorded
        loadConfig(args.config, log)

    config = config.withOverrides(rpcEndpoint=args.rpc, programId=args.program_id, idlPath=args.idl)
    log.info(f"[Main] ledgerdb {args.command}", endpoint=config.rpcEndpoint, programId=config.programId)

    try:
        if args.command == 'addresses':
            result = addressesCommand(args, config)
        else:
            result = asyncio.run(runCommand(args, config, log))
    except LedgerDbError as e:
        log.error(f"[Main] {args.command} failed", errorClass=type(e).__name__, errorMsg=str(e))
        error = {'error': str(e)}
        if hasattr(e, 'debugInfo'):
            error['debug'] = e.debugInfo()
        printJson(error)
        return 1
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log.error(f"[Main] {args.command} failed, endpoint unreachable", errorClass=type(e).__name__,
                  errorMsg=str(e))
        printJson({'error': f"Endpoint unreachable: {config.rpcEndpoint}", 'detail': str(e) or type(e).__name__})
        return 1

    printJson(result)
    return 0


if __name__ == '__main__':
    sys.exit(main())

"""
Command line tools: logging setup, and a monitor printing every message
received from a kernel.
"""

import argparse
import asyncio
import logging
import sys

from pydantic_core import to_json

import kernelmux.config
import kernelmux.sockets
from kernelmux.multiplexer import connect
from kernelmux.wire import Message

def add_parser_arguments(parser):
    """Add generic arguments to the given parser"""
    parser.add_argument('--log-level',
        help='specify logging level (warning, info, debug)')

def setup(name, loglevel=None):
    """
    Common CLI setup steps

    Args:
        name: a string that will be added to each log line, identifying the
            process type
        loglevel: a string among 'debug', 'info', 'warning' (case-insensitive),
            or an integer or integer-like string, or None (= warning)
    """
    log_format = (
        "%(asctime)s "
        "%(levelname)s\t"
        "%(name)s:%(filename)s:%(lineno)d\t"
        "["+name+" %(process)d] "
        "%(message)s"
    )
    if loglevel is None:
        loglevel = logging.WARNING
    try:
        level = int(loglevel)
    except ValueError:
        level = {
            'debug': logging.DEBUG,
            'info': logging.INFO,
            'warning': logging.WARNING
            }.get(loglevel.lower(), logging.WARNING)
    logging.basicConfig(level=level, format=log_format, force=True)

def format_message(message: Message) -> str:
    """
    One-line JSON rendering of an incoming message
    """
    return to_json({
        'channel': message.channel,
        'header': message.header,
        'parent_header': message.parent_header,
        'metadata': message.metadata,
        'content': message.content,
        'buffers': len(message.buffers),
        }).decode('utf8')

async def monitor(config: dict, out=None) -> int:
    """
    Print incoming messages until interrupted, or until `count` messages
    were printed if set.

    Returns:
        number of messages printed
    """
    out = out or sys.stdout
    info = kernelmux.config.load_connection_file(config['connection_file'])
    count = config.get('count')

    printed = 0
    async with await connect(info,
            subscription=config.get('subscription') or b'') as channels:
        async for message in channels.messages():
            print(format_message(message), file=out, flush=True)
            printed += 1
            if count and printed >= count:
                break
    return printed

def main(config: dict) -> int:
    """
    Entry point of the monitor
    """
    setup('monitor', config.get('log_level'))
    try:
        asyncio.run(monitor(config))
    except (kernelmux.config.ConfigError, kernelmux.sockets.SocketError) as exc:
        logging.error('%s', exc)
        return 1
    except KeyboardInterrupt:
        logging.info('Interrupted')
    return 0

def make_parser():
    """
    Creates argument parser and configures it
    """
    parser = argparse.ArgumentParser(
            description='Print messages received from a Jupyter kernel')
    parser.add_argument('connection_file',
            help='Jupyter connection file (kernel-*.json)')
    parser.add_argument('--subscription', default='',
            help='iopub topic filter, default all')
    parser.add_argument('--count', type=int,
            help='exit after this many messages')
    add_parser_arguments(parser)
    return parser

def run():
    """Console script hook"""
    sys.exit(main(vars(make_parser().parse_args())))

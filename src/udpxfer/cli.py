from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from .arq import RetryPolicy
from .bench import run_benchmark
from .constants import DEFAULT_LINGER_MS, DEFAULT_MAX_TIMEOUT_MS, DEFAULT_TIMEOUT_MS
from .errors import ProtocolError
from .net import Impairment, UdpEndpoint
from .receiver import Receiver
from .sender import StopAndWaitSender


def port_number(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def retry_policy(args: argparse.Namespace) -> RetryPolicy:
    try:
        return RetryPolicy(
            timeout_ms=args.timeout_ms,
            max_retries=args.max_retries,
            backoff=args.backoff,
            max_timeout_ms=args.max_timeout_ms,
        )
    except ValueError as exc:
        raise ProtocolError(str(exc)) from None


def report(payload: dict, as_json: bool) -> None:
    print(json.dumps(payload, indent=2) if as_json else payload)


def cmd_recv(args: argparse.Namespace) -> int:
    impair = Impairment(args.loss_rate, args.delay_ms, args.corrupt_rate)
    udp = UdpEndpoint.listening(args.listen_host, args.port, impairment=impair)
    logging.info("listening on %s:%d", args.listen_host, args.port)
    try:
        receiver = Receiver(udp, Path(args.out_dir), linger_ms=args.linger_ms)
        metrics = receiver.run()
    finally:
        udp.close()

    report({**metrics.summary("receiver"), "path": str(receiver.output_path)}, args.json)
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    policy = retry_policy(args)
    impair = Impairment(args.loss_rate, args.delay_ms, args.corrupt_rate)
    udp = UdpEndpoint.sending(impairment=impair)
    try:
        with open(args.source, "rb") as f:
            sender = StopAndWaitSender(udp, (args.host, args.port), f, args.dest_name, policy=policy)
            metrics = sender.run()
    finally:
        udp.close()

    report(metrics.summary("sender"), args.json)
    return 0


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        size_bytes=args.size_bytes,
        loss_rate=args.loss_rate,
        delay_ms=args.delay_ms,
        corrupt_rate=args.corrupt_rate,
        policy=retry_policy(args),
        linger_ms=args.linger_ms,
    )
    report({"role": "bench", **asdict(r)}, args.json)
    return 0


def build_parser(prog: str = "udpxfer") -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=prog, description="Stop-and-wait file transfer over UDP.")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate datagram loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate per-datagram delay")
        x.add_argument("--corrupt-rate", type=float, default=0.0, help="simulate single-bit corruption")
        x.add_argument("--json", action="store_true")

    def add_retry(x: argparse.ArgumentParser, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        x.add_argument("--timeout-ms", type=int, default=timeout_ms)
        x.add_argument("--max-retries", type=int, default=None, help="default: retry forever")
        x.add_argument("--backoff", type=float, default=1.0)
        x.add_argument("--max-timeout-ms", type=int, default=DEFAULT_MAX_TIMEOUT_MS)

    recv = sub.add_parser("recv", help="receive one file")
    add_common(recv)
    recv.add_argument("port", type=port_number)
    recv.add_argument("--listen-host", default="0.0.0.0")
    recv.add_argument("--out-dir", default=".")
    recv.add_argument("--linger-ms", type=int, default=DEFAULT_LINGER_MS)
    recv.set_defaults(func=cmd_recv)

    send = sub.add_parser("send", help="send one file")
    add_common(send)
    add_retry(send)
    send.add_argument("host")
    send.add_argument("port", type=port_number)
    send.add_argument("source")
    send.add_argument("dest_name")
    send.set_defaults(func=cmd_send)

    bench = sub.add_parser("bench", help="loopback run of both roles")
    add_common(bench)
    add_retry(bench, timeout_ms=50)
    bench.add_argument("--size-bytes", type=int, default=1_000_000)
    bench.add_argument("--linger-ms", type=int, default=500)
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return int(args.func(args))
    except (OSError, ProtocolError) as exc:
        logging.error("%s failed: %s", args.cmd, exc)
        return 1


def recv_main(argv: list[str] | None = None) -> int:
    return main(["recv", *(sys.argv[1:] if argv is None else argv)])


def send_main(argv: list[str] | None = None) -> int:
    return main(["send", *(sys.argv[1:] if argv is None else argv)])


if __name__ == "__main__":
    raise SystemExit(main())

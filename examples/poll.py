#!/usr/bin/env python3
"""Example: poll a list of devices on an interval using poll_iter; graceful shutdown on Ctrl+C."""

import sys

from pymelsec_mc import DataType, MelsecClient
from pymelsec_mc.errors import InvalidAddressError, PlcRejectedError, TransportError


def main() -> None:
    host = "192.168.1.10"  # change to your PLC IP
    port = 5000
    tags = ["M8304", ("D100", DataType.SWORD), ("D200", DataType.FLOAT)]
    interval_s = 1.0

    try:
        with MelsecClient(host, port, series="iQ-R", frame="4E") as plc:
            print(f"Polling {tags} every {interval_s}s (Ctrl+C to stop)...")
            for snapshot in plc.poll_iter(tags, interval_s):
                print(snapshot)
    except KeyboardInterrupt:
        print("\nStopped.")
    except InvalidAddressError as e:
        print(f"Invalid device: {e}", file=sys.stderr)
        sys.exit(1)
    except (TransportError, PlcRejectedError) as e:
        print(f"Connection/PLC error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

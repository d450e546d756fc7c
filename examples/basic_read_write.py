#!/usr/bin/env python3
"""Example: connect to a Q series PLC and read/write a few devices over a 3E binary frame."""

import sys

from pymelsec_mc import DataType, MelsecClient
from pymelsec_mc.errors import (
    InvalidAddressError,
    PlcRejectedError,
    TransportError,
    UnsupportedDeviceError,
)


def main() -> None:
    host = "192.168.1.10"  # change to your PLC IP
    port = 5000

    try:
        with MelsecClient(host, port, series="Q") as plc:
            # Mixed read: bits and words of several widths in one call
            values = plc.read(
                [
                    ("M8304", DataType.BIT),
                    ("D100", DataType.SWORD),
                    ("D200", DataType.FLOAT),
                    ("D300", DataType.UDWORD),
                ]
            )
            print(f"M8304, D100, D200, D300 = {values}")

            # Bare devices use BIT or UWORD from the device table
            print(f"SM400 = {plc['SM400']}")

            # Contiguous range, split into several frames when needed
            block = plc.batch_read("D1000", 16)
            print(f"D1000..D1015 = {block}")

            # Writes (uncomment if your PLC allows)
            # plc.write([(("D100", DataType.SWORD), -5), (("M10", DataType.BIT), True)])
            # plc.batch_write("D2000", [1, 2, 3])

            # Explain a device
            print(f"explain(x1a): {plc.explain('x1a')}")
    except (InvalidAddressError, UnsupportedDeviceError) as e:
        print(f"Invalid device: {e}", file=sys.stderr)
        sys.exit(1)
    except PlcRejectedError as e:
        print(f"PLC error {e.code_hex}: {e.description}", file=sys.stderr)
        sys.exit(1)
    except TransportError as e:
        print(f"Connection error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

import asyncio
import sys
import logging

import igd
from errors import UPnPError

USAGE = """Usage: python main.py [--location URL] <command>

Commands:
  ip                      print the router's external IP
  forward PORT [DESC]     forward TCP+UDP PORT to this host
  clear PORT              remove the TCP+UDP mapping for PORT
  location                print the router's location (reuse with --location)"""

async def run(args, location=None):
    if location:
        gateway = await igd.load(location)
    else:
        gateway = await igd.discover()

    command = args[0]
    if command == "ip":
        print(await gateway.external_ip())
    elif command == "forward":
        desc = args[2] if len(args) > 2 else ""
        await gateway.forward(int(args[1]), desc)
        print(f"Forwarded {args[1]} (TCP+UDP)")
    elif command == "clear":
        await gateway.clear(int(args[1]))
        print(f"Cleared {args[1]} (TCP+UDP)")
    elif command == "location":
        print(gateway.location())

def main():
    args = sys.argv[1:]
    location = None
    if len(args) >= 2 and args[0] == "--location":
        location = args[1]
        args = args[2:]

    if not args or args[0] not in ("ip", "forward", "clear", "location") or \
            (args[0] in ("forward", "clear") and len(args) < 2):
        print(USAGE)
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    # Suppress noisy logs from libraries
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('aiohttp').setLevel(logging.WARNING)

    try:
        asyncio.run(run(args, location))
    except (UPnPError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nExiting...")

if __name__ == '__main__':
    main()

"""Allow running as: python -m order_pricing"""

from order_pricing.main import run, serve
import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        serve()
    elif len(sys.argv) > 1:
        run(sys.argv[1])
    else:
        print("usage: python -m order_pricing [--serve | path/to/cart.json]")
        sys.exit(1)

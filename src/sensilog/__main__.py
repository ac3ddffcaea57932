"""Allow running the web server with `python -m sensilog`."""

from sensilog.server import main

if __name__ == "__main__":
    main()

"""Allow running as ``python -m nim_proxy``."""

from nim_proxy.cli import main

if __name__ == "__main__":
    main()

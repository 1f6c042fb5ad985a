"""Entry point: python -m airdeck"""

from .cli import main

if __name__ == "__main__":
    main()

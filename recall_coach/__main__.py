"""Allow running as: python -m recall_coach"""

from .cli import main

if __name__ == "__main__":
    main()

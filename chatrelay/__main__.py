"""Allow ``python -m chatrelay``."""
from chatrelay.cli import main

main()

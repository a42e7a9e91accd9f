"""Allow ``python -m mizito_forwarder``."""

from mizito_forwarder.main import main

main()

"""
Run the gateway with uvicorn.

Example:
    python -m pos_gateway
"""

import uvicorn

from pos_gateway.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "pos_gateway.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()

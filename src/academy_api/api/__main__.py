"""
academy_api.api.__main__

`python -m academy_api.api` (or the `academy-api` script) serves the API with uvicorn.

Uvicorn's own access log is off; `RequestContextMiddleware` writes one structured
`request_completed` event per request instead. Forwarded headers are honoured only
from `forwarded_allow_ips`.
"""

from __future__ import annotations

import uvicorn

from academy_api.api.app import create_app
from academy_api.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        create_app(settings=settings),
        host=settings.api_host,
        port=settings.api_port,
        proxy_headers=True,
        forwarded_allow_ips=settings.forwarded_allow_ips,
        access_log=False,
        log_config=None,
    )


if __name__ == "__main__":
    main()

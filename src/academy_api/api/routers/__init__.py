# Routers are imported individually by `academy_api.api.app`.

"""
ASGI entrypoint: expose `app` for process managers / deployments.

- En production, un process manager (ex: uvicorn-workers, hypercorn) importe `intake_backend.asgi:app`.
- Toute la configuration (routes, middlewares, sécurité, rate limit) est centralisée
  dans intake_backend.app_setup.factory, ce fichier ne fait qu’exposer l’instance `app`.
"""
import logging

from intake_backend.app_setup.factory import create_app

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = create_app()

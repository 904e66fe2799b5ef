"""
Lancement local du service de checkout: `python -m intake_backend`.

Variables lues:
- HOST / PORT: interface et port d'écoute (0.0.0.0:8000 par défaut)
- UVICORN_RELOAD: "1"/"true"/"yes" pour recharger à chaque modification
- LOG_LEVEL: niveau de logs uvicorn
"""
import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "intake_backend.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes"),
        log_level=os.environ.get("LOG_LEVEL", "info"),
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()

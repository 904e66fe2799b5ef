"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Stripe, Airtable, Supabase)
- Catalogue: produit unique et ordre d'affichage des prix
- Sécurité: origines CORS, environnement, rate limiting
- Session: délais d'inactivité côté client (PHI)
"""
# intake_backend.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)


def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _split_env(v: str) -> list:
    return [p.strip() for p in (v or "").split(",") if p.strip()]

# Environnement: "development" active le CORS permissif
APP_ENV = _clean_env(os.getenv("APP_ENV") or "production").lower()
APP_URL = _clean_env(os.getenv("APP_URL") or os.getenv("NEXT_PUBLIC_APP_URL") or "")

# Stripe: clé secrète et secret webhook
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_API_VERSION = _clean_env(os.getenv("STRIPE_API_VERSION") or "")

# Catalogue: produit Tirzepatide et ordre des prix (mensuel, 3 mois, 6 mois)
STRIPE_PRODUCT_ID = _clean_env(os.getenv("STRIPE_PRODUCT_ID") or "prod_Tlz6Xoylok5j7H")
STRIPE_PRICE_ORDER = _split_env(
    os.getenv("STRIPE_PRICE_ORDER")
    or "price_1SoR8eDQIH4O9FhrvfFwzZgX,price_1SoRAGDQIH4O9Fhr1FF5EPtD,price_1SoRASDQIH4O9FhrHyAhVxMf"
)
PRODUCT_IMAGE_URL = _clean_env(
    os.getenv("PRODUCT_IMAGE_URL")
    or "https://static.wixstatic.com/media/c49a9b_b87d0b24fd2c46a4817d308db9b8122c~mv2.webp"
)

# Tag "source" posé sur les objets Stripe créés par le tunnel
STRIPE_METADATA_SOURCE = _clean_env(os.getenv("STRIPE_METADATA_SOURCE") or "otmens-intake")

# Airtable (CRM): table des soumissions d'intake
AIRTABLE_PAT = _clean_env(os.getenv("AIRTABLE_PAT") or "")
AIRTABLE_BASE_ID = _clean_env(os.getenv("AIRTABLE_BASE_ID") or "")
AIRTABLE_TABLE_NAME = _clean_env(os.getenv("AIRTABLE_TABLE_NAME") or "Intake Submissions")
AIRTABLE_API_URL = _clean_env(os.getenv("AIRTABLE_API_URL") or "https://api.airtable.com/v0")

# Supabase: puits des événements d'audit (service-role)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")
AUDIT_TABLE_NAME = _clean_env(os.getenv("AUDIT_TABLE_NAME") or "audit_events")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# CORS: liste blanche explicite (+ APP_URL), localhost ajouté en développement
CORS_ORIGINS = _split_env(
    os.getenv("CORS_ORIGINS")
    or "https://otmens-intake.vercel.app,https://otmens-intakes.vercel.app,"
    "https://www.otmenshealth.com,https://otmenshealth.com,https://checkout.otmenshealth.com"
)
if APP_URL and APP_URL not in CORS_ORIGINS:
    CORS_ORIGINS.append(APP_URL)
if APP_ENV == "development":
    CORS_ORIGINS.extend(["http://localhost:3000", "http://localhost:3001", "http://127.0.0.1:3000"])

# Rate limiting: fenêtre fixe par IP sur /api/*
RATE_LIMIT_ENABLED = (os.getenv("RATE_LIMIT_ENABLED", "true").lower() in ("1", "true", "yes"))
RATE_LIMIT_BACKEND = _clean_env(os.getenv("RATE_LIMIT_BACKEND") or "memory").lower()
RATE_LIMIT_REDIS_URL = _clean_env(os.getenv("RATE_LIMIT_REDIS_URL") or "redis://127.0.0.1:6379/0")
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "60"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# HSTS uniquement derrière HTTPS
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "true").lower() == "true")

# Session client (PHI): 30 min d'inactivité, avertissement 5 min avant
SESSION_TIMEOUT_SECONDS = int(os.getenv("SESSION_TIMEOUT_SECONDS", str(30 * 60)))
SESSION_WARNING_SECONDS = int(os.getenv("SESSION_WARNING_SECONDS", str(5 * 60)))

"""
Django settings module loader.

Picks the settings module from the DJANGO_ENV environment variable
(development, production or test). Defaults to development settings.
"""

import os

env = os.getenv("DJANGO_ENV", "development")

if env == "production":
    from .production import *
elif env == "test":
    from .test import *
else:
    from .development import *

"""
Base settings for the bakery project.
Shared between local and cloud deployments.
"""

from pathlib import Path
import os

from django.urls import reverse_lazy

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-b4k3ry-l0cal-0nly-k3y-ch4nge-m3-in-pr0duct10n')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')


# Application definition
INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'corsheaders',
    'products',
    'stock',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'bakery.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'bakery.wsgi.application'


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True


# Static files
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# CORS
CORS_ALLOW_ALL_ORIGINS = os.getenv('CORS_ALLOW_ALL_ORIGINS', 'True').lower() == 'true'


# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# Stock list pagination bounds
STOCK_PAGE_SIZE_DEFAULT = int(os.getenv('STOCK_PAGE_SIZE_DEFAULT', '10'))
STOCK_PAGE_SIZE_MAX = int(os.getenv('STOCK_PAGE_SIZE_MAX', '100'))


# Unfold Admin Configuration
UNFOLD = {
    "SITE_TITLE": "Bakery Admin",
    "SITE_HEADER": "Bakery",
    "SITE_URL": "/",
    "SITE_SYMBOL": "bakery_dining",

    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": True,
        "navigation": [
            {
                "title": "Dashboard",
                "separator": False,
                "items": [
                    {
                        "title": "Dashboard",
                        "icon": "dashboard",
                        "link": reverse_lazy("admin:index"),
                    },
                ],
            },
            {
                "title": "Inventory",
                "separator": True,
                "items": [
                    {
                        "title": "Stock Items",
                        "icon": "inventory_2",
                        "link": reverse_lazy("admin:stock_stockitem_changelist"),
                    },
                    {
                        "title": "Movements",
                        "icon": "swap_vert",
                        "link": reverse_lazy("admin:stock_stockmovement_changelist"),
                    },
                    {
                        "title": "Brands",
                        "icon": "sell",
                        "link": reverse_lazy("admin:stock_brand_changelist"),
                    },
                ],
            },
            {
                "title": "Products",
                "separator": True,
                "items": [
                    {
                        "title": "Products",
                        "icon": "cake",
                        "link": reverse_lazy("admin:products_product_changelist"),
                    },
                    {
                        "title": "Recipes",
                        "icon": "receipt_long",
                        "link": reverse_lazy("admin:stock_productstockitem_changelist"),
                    },
                ],
            },
        ],
    },
}

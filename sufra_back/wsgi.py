"""
WSGI config for sufra_back project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'sufra_back.settings')

application = get_wsgi_application()

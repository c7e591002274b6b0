"""
WSGI config for the presence_gate project.

It exposes the WSGI callable as a module-level variable named ``application``.
"""

import os

from django.core.wsgi import get_wsgi_application

# WSGI is typically invoked by the production application server, so default to
# the hardened production settings. Local servers can export
# DJANGO_SETTINGS_MODULE=presence_gate.settings instead.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "presence_gate.settings.production")

application = get_wsgi_application()

"""WSGI entrypoint for the node API.

Importing this module boots the node: settings are validated, the sequencer and
health monitor start, and the runtime is installed for the views. Serve it from
a single process; the intention cache and the sequencer live in that process.
"""

import atexit
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "oya_node.settings")

application = get_wsgi_application()

from core.runtime import bootstrap  # noqa: E402  (needs the app registry loaded)

runtime = bootstrap()
atexit.register(runtime.shutdown)

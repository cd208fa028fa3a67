import logging
import signal

from django.core.management.base import BaseCommand, CommandError
from django.core.servers.basehttp import run
from django.core.wsgi import get_wsgi_application

from core.exceptions import FatalConfigError, TransientInfraError
from core.runtime import bootstrap

logger = logging.getLogger(__name__)


class Command(BaseCommand):
	help = "Validate settings, start the bundle sequencer and health monitor, and serve the API"

	def add_arguments(self, parser):
		parser.add_argument("--host", default="0.0.0.0")
		parser.add_argument("--port", type=int, default=3000)

	def handle(self, *args, **opts):
		try:
			runtime = bootstrap()
		except FatalConfigError as e:
			raise CommandError(f"Configuration error: {e.message}")
		except TransientInfraError as e:
			raise CommandError(e.message)

		def _terminate(signum, frame):
			raise KeyboardInterrupt

		signal.signal(signal.SIGTERM, _terminate)
		self.stdout.write(f"Node listening on {opts['host']}:{opts['port']}")
		try:
			run(opts["host"], opts["port"], get_wsgi_application(), threading=True)
		except KeyboardInterrupt:
			pass
		finally:
			runtime.shutdown()

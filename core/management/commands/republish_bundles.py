from django.core.management.base import BaseCommand, CommandError

from core.config import validate_node_settings
from core.exceptions import FatalConfigError, PublishError
from core.models import Bundle
from core.runtime import NodeRuntime


class Command(BaseCommand):
	help = "Upload and anchor bundles whose publish attempt failed, in nonce order"

	def add_arguments(self, parser):
		parser.add_argument("--dry-run", action="store_true", help="Only list the unpublished bundles")
		parser.add_argument(
			"--recover", action="store_true",
			help="Also retry bundles a stopped node never finished publishing. Only use while the node is down.",
		)

	def handle(self, *args, **opts):
		pending = list(Bundle.objects.filter(anchor_tx_hash="").order_by("nonce").values_list("nonce", "publishing", "publish_error"))
		if not pending:
			self.stdout.write("No unpublished bundles.")
			return
		for nonce, publishing, error in pending:
			state = "publishing" if publishing else (error or "not attempted")
			self.stdout.write(f"Bundle {nonce}: {state}")
		if opts["dry_run"]:
			return

		try:
			validate_node_settings()
		except FatalConfigError as e:
			raise CommandError(f"Configuration error: {e.message}")

		runtime = NodeRuntime.from_settings(detached=False)
		if opts["recover"]:
			runtime.pipeline.recover_interrupted()
		try:
			published = runtime.pipeline.republish_pending()
		except PublishError as e:
			raise CommandError(e.message)
		self.stdout.write(self.style.SUCCESS(f"Republished {len(published)} bundles: {published}"))

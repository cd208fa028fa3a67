"""In-memory accumulator of processed executions awaiting the next bundle.

Entries keep insertion order. The sequencer takes a snapshot, persists it, and
only then discards exactly the entries it persisted, so executions appended
while a bundle is being written stay queued for the next cycle.
"""

import threading
from dataclasses import dataclass, field


@dataclass
class CachedExecution:
	"""
	One execution plus the deposit holds it must commit and the balance
	reservations it must settle when its bundle persists.
	"""
	execution: dict
	hold_ids: list[int] = field(default_factory=list)
	reservations: list[dict] = field(default_factory=list)


class IntentionCache:

	def __init__(self):
		self._entries: list[CachedExecution] = []
		self._lock = threading.Lock()

	def append(self, entry: CachedExecution) -> int:
		with self._lock:
			self._entries.append(entry)
			return len(self._entries)

	def snapshot(self) -> list[CachedExecution]:
		with self._lock:
			return list(self._entries)

	def discard(self, count: int) -> None:
		"""
		Drop the oldest `count` entries (the ones a persisted bundle now owns).
		"""
		with self._lock:
			del self._entries[:count]

	def clear(self) -> list[CachedExecution]:
		with self._lock:
			entries = list(self._entries)
			self._entries.clear()
			return entries

	def __len__(self) -> int:
		with self._lock:
			return len(self._entries)

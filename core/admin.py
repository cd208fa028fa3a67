from django.contrib import admin

from .models import Bundle, Deposit, DepositAssignment, DepositHold, Proposer, Vault, VaultBalance, VaultController


class DepositAssignmentInline(admin.TabularInline):
	model = DepositAssignment
	extra = 0
	readonly_fields = ("amount", "target_reference", "created_at")


@admin.register(Deposit)
class DepositAdmin(admin.ModelAdmin):
	list_display = ("id", "depositor", "token", "chain_id", "amount", "remaining", "held", "assigned_at")
	list_filter = ("chain_id",)
	search_fields = ("depositor", "token", "tx_hash", "transfer_uid")
	inlines = [DepositAssignmentInline]


@admin.register(DepositHold)
class DepositHoldAdmin(admin.ModelAdmin):
	list_display = ("id", "deposit", "amount", "reference", "status", "created_at", "resolved_at")
	list_filter = ("status",)


class VaultControllerInline(admin.TabularInline):
	model = VaultController
	extra = 0


@admin.register(Vault)
class VaultAdmin(admin.ModelAdmin):
	list_display = ("vault_id", "last_nonce", "seeding_status", "created_at")
	list_filter = ("seeding_status",)
	inlines = [VaultControllerInline]


@admin.register(Bundle)
class BundleAdmin(admin.ModelAdmin):
	list_display = ("nonce", "intention_count", "content_id", "anchor_tx_hash", "publishing", "archival_status", "webhook_status", "created_at")
	list_filter = ("archival_status", "webhook_status")
	search_fields = ("content_id", "anchor_tx_hash")
	exclude = ("payload",)


@admin.register(VaultBalance)
class VaultBalanceAdmin(admin.ModelAdmin):
	list_display = ("vault_id", "token", "balance", "held", "updated_at")
	search_fields = ("token",)


admin.site.register(Proposer)

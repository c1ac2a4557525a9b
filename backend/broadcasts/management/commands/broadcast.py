import json

from django.core.management.base import BaseCommand, CommandError

from broadcasts import services
from broadcasts.exceptions import BroadcastError
from broadcasts.tasks import resume_stalled_broadcasts


class Command(BaseCommand):
    help = "Inspect and drive broadcasts: status, send, records, resume (stalled SENDING broadcasts)."

    def add_arguments(self, parser):
        parser.add_argument("action", choices=["status", "send", "records", "resume"])
        parser.add_argument("broadcast_id", nargs="?", help="Broadcast id (not needed for resume)")
        parser.add_argument("--tenant", help="Tenant (school) id owning the broadcast")
        parser.add_argument("--page", type=int, default=1, help="Page for `records`")
        parser.add_argument("--page-size", type=int, default=services.DEFAULT_RECORDS_PAGE_SIZE)
        parser.add_argument("--stall-seconds", type=int, help="Override BROADCAST_STALL_SECONDS for `resume`")
        parser.add_argument("--json", action="store_true", help="Output as JSON (default is pretty text)")

    def handle(self, *args, **opts):
        action = opts["action"]
        if action == "resume":
            self._emit(resume_stalled_broadcasts(opts.get("stall_seconds")), opts)
            return

        if not opts.get("broadcast_id") or not opts.get("tenant"):
            raise CommandError(f"`{action}` needs a broadcast id and --tenant")
        tenant_id, broadcast_id = opts["tenant"], opts["broadcast_id"]

        try:
            tenant_id = str(services.parse_uuid(tenant_id, "tenant id"))
            if action == "status":
                result = services.get_broadcast_status(tenant_id, broadcast_id)
            elif action == "send":
                b = services.send_broadcast(tenant_id, broadcast_id)
                result = {"ok": True, "id": str(b.id), "status": b.status}
            else:
                rows = services.list_delivery_records(
                    tenant_id, broadcast_id, page=opts["page"], page_size=opts["page_size"],
                )
                result = {
                    "page": opts["page"],
                    "records": [
                        {
                            "recipient_id": r.recipient_id,
                            "status": r.status,
                            "failure_reason": r.failure_reason,
                        }
                        for r in rows
                    ],
                }
        except BroadcastError as e:
            raise CommandError(str(e))

        self._emit(result, opts)

    def _emit(self, result, opts):
        if opts.get("json"):
            self.stdout.write(json.dumps(result, indent=2, default=str))
            return
        if "records" in result:
            for r in result["records"]:
                reason = f"  ({r['failure_reason']})" if r["failure_reason"] else ""
                self.stdout.write(f" {r['status']:<8} {r['recipient_id']}{reason}\n")
            self.stdout.write(f"\n{len(result['records'])} record(s) on page {result['page']}\n")
            return
        for key, val in result.items():
            self.stdout.write(f" {key}: {val}\n")

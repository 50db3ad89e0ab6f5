"""
Celery tasks for inventory upkeep.

Tasks:
    - refresh_inventory_statuses: Re-derive status for every entry (every 6h)
    - send_low_stock_alerts: One restock alert per pharmacy (daily)
"""
import logging
from collections import defaultdict

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def refresh_inventory_statuses():
    """
    Catch status changes no stock movement triggers, such as a batch
    reaching its expiry date.
    """
    from inventory import ledger

    return {'updated': ledger.refresh_statuses()}


@shared_task
def send_low_stock_alerts():
    """
    Group LOW / OUT_OF_STOCK entries by pharmacy and send each pharmacy a
    single restock alert.
    """
    from inventory import ledger

    alerts = defaultdict(list)
    pharmacies = {}
    for entry in ledger.low_stock_entries():
        pharmacies[entry.pharmacy_id] = entry.pharmacy
        alerts[entry.pharmacy_id].append(entry)

    for pharmacy_id, entries in alerts.items():
        pharmacy = pharmacies[pharmacy_id]
        items = ', '.join(
            f"{entry.medicine.name} ({entry.current_stock} left)" for entry in entries
        )
        message = f"Low stock items at {pharmacy.name}: {items}. Please restock soon."
        if pharmacy.phone:
            logger.info(f"[SMS] To {pharmacy.phone}: {message}")
        else:
            logger.warning(f"Pharmacy #{pharmacy_id} has no phone: {message}")

    if alerts:
        logger.info(f"Sent low stock alerts to {len(alerts)} pharmacies")

    return {'pharmacies_alerted': len(alerts)}

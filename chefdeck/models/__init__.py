from chefdeck.models.inventory.inventory_cycle import InventoryCycle
from chefdeck.models.inventory.global_inventory_item import GlobalInventoryItem

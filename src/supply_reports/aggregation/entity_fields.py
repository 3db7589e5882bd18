"""Per-entity field candidate chains.

Each record type names its semantic fields differently depending on which
endpoint produced it. The chains below are ordered by priority: the specific
business field first, generic fallbacks last.
"""

from __future__ import annotations

from dataclasses import dataclass


CREATED_FIELDS = ("createdAt", "created_at")
UNIT_COST_FIELDS = ("unitCost", "cost", "unitPrice")
CACHED_TOTAL_FIELDS = ("totalQuantity", "total_quantity", "totalItems", "total_items")
CATEGORY_FIELDS = (
    "category",
    "itemCategory",
    "item.category",
    "Item.category",
    "itemType",
    "type",
)
STATUS_FIELDS = ("status", "deliveryStatus", "distributionStatus")

WAREHOUSE_ID_FIELDS = ("warehouseId", "nationalWarehouseId", "sourceWarehouseId")
COUNCIL_ID_FIELDS = ("localCouncilId", "councilId", "destinationCouncilId")
SCHOOL_ID_FIELDS = ("schoolId", "destinationSchoolId")


@dataclass(frozen=True)
class EntityFields:
    """Candidate field chains for one record type."""

    name: str
    date_fields: tuple[str, ...]
    line_item_fields: tuple[str, ...]
    line_quantity_fields: tuple[str, ...]
    record_quantity_fields: tuple[str, ...] = CACHED_TOTAL_FIELDS
    category_fields: tuple[str, ...] = CATEGORY_FIELDS
    unit_cost_fields: tuple[str, ...] = UNIT_COST_FIELDS
    processing_start_fields: tuple[str, ...] = CREATED_FIELDS
    processing_end_fields: tuple[str, ...] = ()


DISTRIBUTION = EntityFields(
    name="distribution",
    date_fields=("distributionDate",) + CREATED_FIELDS + ("date",),
    line_item_fields=("items", "distributionItems"),
    line_quantity_fields=("quantityDistributed", "quantity_distributed", "quantity"),
    processing_start_fields=("distributionDate",) + CREATED_FIELDS,
    processing_end_fields=("confirmedAt", "confirmed_at", "confirmationDate"),
)

SHIPMENT = EntityFields(
    name="shipment",
    date_fields=("actualArrivalDate", "dispatchDate", "shippedDate") + CREATED_FIELDS,
    line_item_fields=("items", "shipmentItems"),
    line_quantity_fields=("quantityShipped", "quantityReceived", "quantity"),
    processing_start_fields=("dispatchDate", "shippedDate") + CREATED_FIELDS,
    processing_end_fields=("actualArrivalDate", "receivedDate", "deliveredAt"),
)

DIRECT_SHIPMENT = EntityFields(
    name="direct_shipment",
    date_fields=("actualArrivalDate", "dispatchDate", "shippedDate") + CREATED_FIELDS,
    line_item_fields=("items", "shipmentItems"),
    line_quantity_fields=("quantityShipped", "quantity"),
    processing_start_fields=("dispatchDate", "shippedDate") + CREATED_FIELDS,
    processing_end_fields=("actualArrivalDate", "receivedDate", "deliveredAt"),
)

RECEIPT = EntityFields(
    name="receipt",
    date_fields=("receivedDate", "receiptDate") + CREATED_FIELDS + ("date",),
    line_item_fields=("items", "receiptItems"),
    line_quantity_fields=("quantityReceived", "quantity"),
    processing_start_fields=("expectedDate",) + CREATED_FIELDS,
    processing_end_fields=("receivedDate", "completedAt", "validatedAt"),
)

# Stock totals and stock-level metrics both read on-hand through this chain
ON_HAND_FIELDS = ("quantityOnHand", "availableQuantity", "quantity")

INVENTORY = EntityFields(
    name="inventory",
    date_fields=("lastUpdated", "updatedAt") + CREATED_FIELDS,
    line_item_fields=(),
    line_quantity_fields=ON_HAND_FIELDS,
    record_quantity_fields=ON_HAND_FIELDS,
)

# Inventory-only fields
MINIMUM_STOCK_FIELDS = ("minimumStockLevel", "minStock", "reorderLevel")
DAMAGED_FIELDS = ("damaged", "damagedQuantity")
UNUSED_FIELDS = ("unused", "unusedQuantity")

# Classification fields
SUPPLIER_FIELDS = ("supplierName", "supplier.name", "supplier")
COUNCIL_NAME_FIELDS = ("destinationCouncilName", "localCouncilName", "councilName")
SCHOOL_NAME_FIELDS = ("destinationSchoolName", "schoolName")
SCHOOL_TYPE_FIELDS = ("schoolType", "school.type", "school.schoolType")
SOURCE_NAME_FIELDS = ("localCouncilName", "sourceName")
DISCREPANCY_FIELDS = ("hasDiscrepancies", "has_discrepancies")

"""Class and attribute names the extension writes into the host page."""

from __future__ import annotations

CONTROL_CONTAINER_CLASS = "archivaz-button-container"
CONTROL_ITEM_CLASS = "archivaz-control-item"
SYNTHESIZED_CONTAINER_CLASS = "archivaz-synthesized-actions"
DETAILS_HIDDEN_CLASS = "archivaz-details-hidden"
HIDDEN_ELEMENT_CLASS = "archivaz-hidden-details"
OVERLAY_CLASS = "archivaz-delivery-status-tags"
OVERLAY_TAG_LIST_CLASS = "archivaz-tags-list"
OVERLAY_TAG_CLASS = "archivaz-delivery-status-tag"

ORDER_ID_ATTR = "data-archivaz-order-id"
CONTROL_TYPE_ATTR = "data-archivaz-type"
ORIGINAL_DISPLAY_ATTR = "data-archivaz-original-display"
HIDING_ATTR = "data-archivaz-hiding"
PROCESSED_ATTR = "data-archivaz-processed"
SYNTHESIZED_ATTR = "data-archivaz-synthesized"

HIDE_DETAILS = "hide-details"
SHOW_DETAILS = "show-details"
HIDE_LABEL = "Hide details"
SHOW_LABEL = "Show details"

CONTROL_SELECTOR = f".{CONTROL_CONTAINER_CLASS}, [{CONTROL_TYPE_ATTR}]"

"""
Images Module - Black Box Interface

Purpose: Inventory container images present on nodes
Interface: ImageInventory.list_node_images(), list_all_nodes_images()
Hidden: nerdctl table scraping, de-duplication
"""

from .inventory import ImageInventory, merge_images, parse_nerdctl_images

__all__ = ["ImageInventory", "merge_images", "parse_nerdctl_images"]

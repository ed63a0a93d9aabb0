"""
Container image inventory.

Lists the images present in a node's containerd store with "nerdctl images"
and merges inventories across nodes.
"""

import asyncio
import logging
import re
from typing import Iterable, List

from nodepilot.errors import CommandError, RemoteTimeoutError
from nodepilot.modules.api.models import ContainerImage, NodeDescriptor
from nodepilot.modules.remote import CommandRunner, SessionFactory

logger = logging.getLogger("nodepilot.images")

IMAGES_COMMAND = "nerdctl images 2>&1"

COLUMN_SPLIT = re.compile(r"\s{2,}")


def parse_nerdctl_images(output: str) -> List[ContainerImage]:
    """
    Parse "nerdctl images" table output.

    Columns: REPOSITORY, TAG, IMAGE ID, CREATED, PLATFORM, SIZE, BLOB SIZE.
    Columns are separated by two or more spaces since CREATED contains
    single spaces. Rows before the header are ignored; rows with fewer than
    three columns are skipped; repeated name:tag pairs keep the first row.
    """
    lines = [line for line in output.splitlines() if line.strip()]

    header_index = next(
        (i for i, line in enumerate(lines) if "REPOSITORY" in line and "TAG" in line), None
    )
    if header_index is None:
        return []

    images = []
    seen = set()
    for line in lines[header_index + 1:]:
        parts = [part for part in COLUMN_SPLIT.split(line.strip()) if part.strip()]
        if len(parts) < 3:
            logger.debug(f"Skipping image row with {len(parts)} columns: {line}")
            continue

        name, tag = parts[0].strip(), parts[1].strip()
        key = f"{name}:{tag}"
        if key in seen:
            continue
        seen.add(key)

        if len(parts) >= 7:
            size = parts[-2].strip()
        elif len(parts) >= 6:
            size = parts[-1].strip()
        else:
            size = "0B"

        images.append(
            ContainerImage(
                name=name,
                tag=tag,
                digest=parts[2].strip(),
                size=size or "0B",
                created_at=parts[3].strip() if len(parts) >= 6 else None,
            )
        )
    return images


def merge_images(inventories: Iterable[List[ContainerImage]]) -> List[ContainerImage]:
    """Union of inventories, first occurrence wins, sorted by name:tag."""
    merged = {}
    for images in inventories:
        for image in images:
            merged.setdefault(image.reference, image)
    return sorted(merged.values(), key=lambda image: image.reference)


class ImageInventory:
    """Reads container image lists from nodes."""

    def __init__(self, session_factory: SessionFactory):
        self.sessions = session_factory

    async def list_node_images(self, node: NodeDescriptor) -> List[ContainerImage]:
        """
        List images on one node.

        A node without nerdctl, or with output that cannot be parsed,
        has no images. Session failures propagate.
        """
        async with self.sessions.open(node) as session:
            runner = CommandRunner(session)
            try:
                output = await runner.run(IMAGES_COMMAND)
            except (CommandError, RemoteTimeoutError) as e:
                logger.warning(f"[{node.label}] nerdctl images failed: {e}")
                return []

        if not output:
            logger.warning(f"[{node.label}] nerdctl images returned no output")
            return []
        if "command not found" in output or "bash:" in output:
            logger.warning(f"[{node.label}] nerdctl unavailable: {output[:200]}")
            return []

        images = parse_nerdctl_images(output)
        if not images:
            logger.warning(f"[{node.label}] no images parsed from: {output[:500]}")
        else:
            logger.info(f"[{node.label}] found {len(images)} image(s)")
        return images

    async def list_all_nodes_images(self, nodes: Iterable[NodeDescriptor]) -> List[ContainerImage]:
        """Merged, de-duplicated inventory; failing nodes are logged and skipped."""
        nodes = list(nodes)
        if not nodes:
            return []

        results = await asyncio.gather(
            *(self.list_node_images(node) for node in nodes), return_exceptions=True
        )
        inventories = []
        for node, result in zip(nodes, results):
            if isinstance(result, Exception):
                logger.error(f"[{node.label}] image listing failed: {result}")
                continue
            inventories.append(result)

        merged = merge_images(inventories)
        logger.info(f"Collected {len(merged)} unique image(s) from {len(inventories)} node(s)")
        return merged

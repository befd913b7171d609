"""Sample entry tree covering every permission variation."""

from loguru import logger

from entry_tree.config import SAMPLE_ROOT_TITLE
from entry_tree.core.tree.mutations import TreeMutationService
from entry_tree.models.entry import EntryNode, User
from entry_tree.models.permission import Permission


def build_sample_tree(owner: User, *, title: str = SAMPLE_ROOT_TITLE) -> EntryNode:
    """Build (but do not persist) the sample project tree.

    Layout:
        Sample Project
        ├── Chapter 1: Introduction
        │   ├── 1.1 Overview
        │   └── 1.2 Key Features
        ├── [NO ACCESS] Chapter 2: Implementation   (owner explicitly denied)
        ├── [READER ONLY] Architecture
        ├── [COMMENTER ONLY] Database Schema
        └── Chapter 3: Conclusion
    """
    root = EntryNode(
        title, "This is a sample project for testing the entry management system.", owner
    )

    chapter1 = EntryNode(
        "Chapter 1: Introduction", "Introduction to the project and its purpose.", owner
    )
    root.attach_child(chapter1)
    chapter1.attach_child(
        EntryNode("1.1 Overview", "An overview of the system architecture.", owner)
    )
    chapter1.attach_child(
        EntryNode("1.2 Key Features", "Key features and capabilities of the system.", owner)
    )

    chapter2 = EntryNode(
        "[NO ACCESS] Chapter 2: Implementation",
        "Implementation details and technical decisions.",
        owner,
    )
    chapter2.permissions.remove(owner.id)
    root.attach_child(chapter2)

    reader_only = EntryNode(
        "[READER ONLY] Architecture", "System architecture and design patterns.", owner
    )
    reader_only.permissions.set(owner.id, Permission.READER)
    root.attach_child(reader_only)

    commenter_only = EntryNode(
        "[COMMENTER ONLY] Database Schema", "Database design and relationships.", owner
    )
    commenter_only.permissions.set(owner.id, Permission.COMMENTOR)
    root.attach_child(commenter_only)

    root.attach_child(
        EntryNode("Chapter 3: Conclusion", "Final thoughts and future improvements.", owner)
    )
    return root


def ensure_sample_tree(
    service: TreeMutationService, owner: User, *, title: str = SAMPLE_ROOT_TITLE
) -> int:
    """Return the id of the sample root, creating the tree if it is missing."""
    for root in service.store.fetch_roots_minimal():
        if root.title == title:
            logger.debug("Sample tree already present (id={})", root.id)
            return root.id

    tree = build_sample_tree(owner, title=title)
    service.persist_structure(tree)
    logger.info("Created sample tree {!r} (id={})", title, tree.id)
    return tree.id

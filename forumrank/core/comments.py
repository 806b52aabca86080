"""Comment thread reconstruction."""

from typing import Iterable

from .models import Comment, CommentNode


def build_comment_tree(comments: Iterable[Comment]) -> list[CommentNode]:
    """
    Nest a flat, chronologically ordered comment list into reply threads.

    A comment whose parent is not in the list (deleted, or never existed)
    becomes a root so its replies stay reachable. Input order is kept at
    every level.
    """
    nodes = [CommentNode(comment=c) for c in comments]
    by_id = {node.comment.id: node for node in nodes}

    roots: list[CommentNode] = []
    for node in nodes:
        parent_id = node.comment.parent_id
        parent = by_id.get(parent_id) if parent_id is not None else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.replies.append(node)

    return roots

from __future__ import annotations


UNTAGGED_GROUP_ID = "untagged"
UNTAGGED_GROUP_NAME = "Untagged"
UNTAGGED_GROUP_COLOR = "#6b7280"
UNTITLED_LINK_LABEL = "Untitled link"


def build_link_graph(links) -> dict:
    """Group links under their tags as graph nodes and tag->link edges.

    Links without tags hang off a synthetic ``untagged`` group node. A link
    with several tags gets one edge per tag.
    """
    groups: dict[str, dict] = {}
    members: dict[str, list] = {}

    for link in links:
        tags = list(link.tags)
        if not tags:
            groups.setdefault(
                UNTAGGED_GROUP_ID,
                {
                    "id": UNTAGGED_GROUP_ID,
                    "name": UNTAGGED_GROUP_NAME,
                    "color": UNTAGGED_GROUP_COLOR,
                },
            )
            members.setdefault(UNTAGGED_GROUP_ID, []).append(link)
            continue
        for tag in tags:
            key = str(tag.id)
            groups.setdefault(key, {"id": tag.id, "name": tag.name, "color": tag.color})
            members.setdefault(key, []).append(link)

    nodes = []
    edges = []
    seen_links = set()
    for key, group in groups.items():
        tag_node_id = f"tag-{key}"
        nodes.append(
            {
                "id": tag_node_id,
                "type": "tag",
                "label": group["name"],
                "color": group["color"],
                "linkCount": len(members[key]),
            }
        )
        for link in members[key]:
            link_node_id = f"link-{link.id}"
            if link_node_id not in seen_links:
                seen_links.add(link_node_id)
                nodes.append(
                    {
                        "id": link_node_id,
                        "type": "link",
                        "label": link.title or link.domain or UNTITLED_LINK_LABEL,
                        "url": link.url,
                    }
                )
            edges.append(
                {
                    "id": f"edge-{len(edges)}",
                    "source": tag_node_id,
                    "target": link_node_id,
                    "color": group["color"],
                }
            )

    return {"nodes": nodes, "edges": edges}

"""LayoutTree objects: snapshots of the renderer's layout object tree."""

from __future__ import annotations

from dataclasses import dataclass, field

from trace_diagnostics.model import ObjectInstance, ObjectSnapshot

LAYOUT_TREE_TYPE = "LayoutTree"


@dataclass
class LayoutObject:
    name: str | None
    id: str | None = None
    node_id: int | None = None
    tag: str | None = None
    children: list["LayoutObject"] = field(default_factory=list)

    @classmethod
    def from_args(cls, args: dict) -> "LayoutObject":
        if not isinstance(args, dict):
            raise ValueError(f"layout object must be a dict, got {type(args).__name__}")
        raw_children = args.get("children")
        if not isinstance(raw_children, list):
            raw_children = []
        children = [cls.from_args(child) for child in raw_children if isinstance(child, dict)]
        raw_id = args.get("id")
        return cls(
            name=args.get("name"),
            id=str(raw_id) if raw_id is not None else None,
            node_id=args.get("nodeId"),
            tag=args.get("tag"),
            children=children
        )

    def iter_objects(self):
        yield self
        for child in self.children:
            yield from child.iter_objects()


@dataclass(eq=False)
class LayoutTreeInstance(ObjectInstance):
    pass


@dataclass(eq=False)
class LayoutTreeSnapshot(ObjectSnapshot):
    root_layout_object: LayoutObject | None = None

    def __post_init__(self):
        if self.root_layout_object is None:
            root_args = self.args.get("layoutTree", self.args)
            if isinstance(root_args, list):
                root_args = root_args[0] if root_args else {}
            self.root_layout_object = LayoutObject.from_args(root_args)


def register_layout_tree(registry) -> None:
    registry.register(
        LAYOUT_TREE_TYPE,
        snapshot_factory=LayoutTreeSnapshot,
        instance_factory=LayoutTreeInstance,
        view_metadata={
            "name": "layoutTree",
            "pluralName": "layoutTrees",
            "singleViewElementName": "tr-ui-a-layout-tree-sub-view",
            "multiViewElementName": "tr-ui-a-layout-tree-sub-view"
        }
    )

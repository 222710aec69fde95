# Overview: Service-layer operations for the organization tree and role bindings.

"""
Organization Hierarchy Store

The unit tree is a parent-pointer tree per tenant. Every structural write
validates before it mutates:
- parent exists and belongs to the same tenant
- a child's level is never above its parent's level
- no cycles; ancestor walks are bounded by MAX_HIERARCHY_DEPTH
- one root per tenant

Role availability: a role is usable in a unit if it is bound directly to
the unit or to any ancestor. Only direct bindings are stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app, has_app_context

from ..authority import STANDARD_ROLES
from ..errors import ConflictError, NotFoundError, StructuralIntegrityError, ValidationError
from ..extensions import db
from ..models import OrganizationRole, OrganizationUnit, RoleBinding, Tenant, UNIT_LEVELS
from .concurrency import commit_versioned, lock_for_update, run_with_retry, unique_guard

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32

STALE_UNIT = "Organization unit was changed by another request; reload and retry"

# Partial unique index on organization_units(tenant_id) WHERE parent_id IS NULL
ONE_ROOT_INDEX = "uq_units_one_root_per_tenant"

UNASSIGN_REMOVED = "REMOVED"
UNASSIGN_INHERITED_ONLY = "INHERITED_ONLY"
UNASSIGN_NOT_BOUND = "NOT_BOUND"


@dataclass(frozen=True)
class EffectiveRole:
    role: OrganizationRole
    is_direct: bool
    source_unit_id: int
    source_unit_name: str

    def to_dict(self) -> dict:
        data = self.role.to_dict()
        data.update(
            {
                "is_direct": self.is_direct,
                "is_inherited": not self.is_direct,
                "source_unit_id": self.source_unit_id,
                "source_unit_name": self.source_unit_name,
            }
        )
        return data


@dataclass
class AssignResult:
    unit_id: int
    bound_role_ids: list[int] = field(default_factory=list)
    removed_role_ids: list[int] = field(default_factory=list)
    propagated_unit_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "unit_id": self.unit_id,
            "bound_role_ids": self.bound_role_ids,
            "removed_role_ids": self.removed_role_ids,
            "propagated_unit_ids": self.propagated_unit_ids,
        }


@dataclass(frozen=True)
class UnassignResult:
    changed: bool
    reason: str

    def to_dict(self) -> dict:
        return {"changed": self.changed, "reason": self.reason}


def _max_depth() -> int:
    if has_app_context():
        return int(current_app.config.get("MAX_HIERARCHY_DEPTH", DEFAULT_MAX_DEPTH))
    return DEFAULT_MAX_DEPTH


def level_rank(level: str) -> int:
    """LEVEL_1 -> 1 ... LEVEL_5 -> 5."""
    if level not in UNIT_LEVELS:
        raise ValidationError(f"level must be one of: {', '.join(UNIT_LEVELS)}")
    return UNIT_LEVELS.index(level) + 1


def _child_level(parent: OrganizationUnit) -> str:
    rank = min(level_rank(parent.level) + 1, len(UNIT_LEVELS))
    return UNIT_LEVELS[rank - 1]


# -- Tenants --

def create_tenant(name: str, code: str | None = None, *, root_unit_name: str | None = None) -> Tenant:
    """Create a tenant and its root unit in one transaction."""
    if not name or not name.strip():
        raise ValidationError("Tenant name is required")

    if code and db.session.query(Tenant).filter_by(code=code).first():
        raise ConflictError(f"Tenant code '{code}' already exists")

    tenant = Tenant(name=name.strip(), code=code)
    db.session.add(tenant)
    db.session.flush()

    root = OrganizationUnit(
        tenant_id=tenant.id,
        name=(root_unit_name or name).strip(),
        parent_id=None,
        level=UNIT_LEVELS[0],
    )
    db.session.add(root)
    db.session.commit()

    logger.info("Tenant created", extra={"tenant_id": tenant.id, "root_unit_id": root.id})
    return tenant


def get_root_unit(tenant_id: int) -> OrganizationUnit | None:
    return (
        db.session.query(OrganizationUnit)
        .filter(OrganizationUnit.tenant_id == tenant_id, OrganizationUnit.parent_id.is_(None))
        .first()
    )


# -- Units --

def get_unit(unit_id: int, tenant_id: int | None = None) -> OrganizationUnit:
    unit = db.session.get(OrganizationUnit, unit_id)
    if unit is None or (tenant_id is not None and unit.tenant_id != tenant_id):
        raise NotFoundError("Organization unit not found")
    return unit


def list_units(tenant_id: int, *, active_only: bool = False) -> list[OrganizationUnit]:
    query = db.session.query(OrganizationUnit).filter_by(tenant_id=tenant_id)
    if active_only:
        query = query.filter(OrganizationUnit.is_active.is_(True))
    return query.order_by(OrganizationUnit.level.asc(), OrganizationUnit.name.asc()).all()


def get_ancestors(unit_id: int, *, include_self: bool = False) -> list[OrganizationUnit]:
    """
    Ancestors nearest first, ending at the root.

    Raises StructuralIntegrityError on a cycle or when the chain is deeper
    than MAX_HIERARCHY_DEPTH.
    """
    unit = get_unit(unit_id)
    max_depth = _max_depth()

    chain: list[OrganizationUnit] = [unit] if include_self else []
    seen = {unit.id}
    current = unit
    steps = 0

    while current.parent_id is not None:
        steps += 1
        if steps > max_depth:
            raise StructuralIntegrityError(
                f"Hierarchy deeper than {max_depth} levels above unit {unit_id}"
            )
        parent = db.session.get(OrganizationUnit, current.parent_id)
        if parent is None:
            raise StructuralIntegrityError(f"Unit {current.id} points at a missing parent")
        if parent.id in seen:
            raise StructuralIntegrityError(f"Cycle detected above unit {unit_id}")
        seen.add(parent.id)
        chain.append(parent)
        current = parent

    return chain


def _children_map(tenant_id: int) -> dict[int, list[int]]:
    rows = (
        db.session.query(OrganizationUnit.id, OrganizationUnit.parent_id)
        .filter(OrganizationUnit.tenant_id == tenant_id)
        .all()
    )
    children: dict[int, list[int]] = {}
    for unit_id, parent_id in rows:
        if parent_id is None:
            continue
        children.setdefault(parent_id, []).append(unit_id)
    return children


def get_descendant_ids(unit_id: int, *, include_self: bool = True) -> list[int]:
    unit = get_unit(unit_id)
    children_map = _children_map(unit.tenant_id)

    result: list[int] = []
    if include_self:
        result.append(unit_id)

    seen = {unit_id}
    stack = list(children_map.get(unit_id, []))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        result.append(current)
        stack.extend(children_map.get(current, []))

    return result


def _subtree_height(unit_id: int, children_map: dict[int, list[int]]) -> int:
    height = 0
    frontier = [unit_id]
    seen = {unit_id}
    while True:
        nxt = [c for u in frontier for c in children_map.get(u, []) if c not in seen]
        if not nxt:
            return height
        seen.update(nxt)
        height += 1
        frontier = nxt


def get_unit_tree(unit_id: int) -> dict:
    unit = get_unit(unit_id)
    units = {u.id: u for u in list_units(unit.tenant_id)}
    children_map = _children_map(unit.tenant_id)

    def _build(node: OrganizationUnit, depth: int) -> dict:
        if depth > _max_depth():
            raise StructuralIntegrityError(f"Hierarchy deeper than {_max_depth()} levels below unit {unit_id}")
        kids = sorted((units[c] for c in children_map.get(node.id, [])), key=lambda u: u.name)
        return {
            "unit": node.to_dict(),
            "children": [_build(child, depth + 1) for child in kids],
        }

    return _build(unit, 0)


def _validate_parent(tenant_id: int, parent_id: int, level: str) -> OrganizationUnit:
    parent = db.session.get(OrganizationUnit, parent_id)
    if parent is None or parent.tenant_id != tenant_id:
        raise StructuralIntegrityError("Parent unit not found in this tenant")
    if level_rank(level) < level_rank(parent.level):
        raise StructuralIntegrityError(
            f"A {level} unit cannot sit under a {parent.level} unit"
        )
    return parent


def create_unit(
    tenant_id: int,
    name: str,
    *,
    parent_id: int | None = None,
    level: str | None = None,
    code: str | None = None,
) -> OrganizationUnit:
    def _op():
        if not name or not name.strip():
            raise ValidationError("Unit name is required")

        if db.session.get(Tenant, tenant_id) is None:
            raise NotFoundError("Tenant not found")

        if parent_id is None:
            if get_root_unit(tenant_id) is not None:
                raise StructuralIntegrityError("Tenant already has a root unit")
            unit_level = level or UNIT_LEVELS[0]
            level_rank(unit_level)
        else:
            parent = db.session.get(OrganizationUnit, parent_id)
            unit_level = level or (_child_level(parent) if parent is not None else UNIT_LEVELS[0])
            parent = _validate_parent(tenant_id, parent_id, unit_level)
            depth = len(get_ancestors(parent.id)) + 1
            if depth + 1 > _max_depth():
                raise StructuralIntegrityError(f"Hierarchy cannot exceed {_max_depth()} levels")

        unit = OrganizationUnit(
            tenant_id=tenant_id,
            name=name.strip(),
            code=code,
            parent_id=parent_id,
            level=unit_level,
        )
        db.session.add(unit)
        with unique_guard(ONE_ROOT_INDEX, "organization_units.tenant_id", "Tenant already has a root unit"):
            db.session.commit()

        logger.info("Organization unit created", extra={"unit_id": unit.id, "parent_id": parent_id})
        return unit

    return run_with_retry(_op)


def update_unit(unit_id: int, *, name: str | None = None, code: str | None = None, is_active: bool | None = None) -> OrganizationUnit:
    def _op():
        unit = lock_for_update(db.session.query(OrganizationUnit).filter_by(id=unit_id)).first()
        if not unit:
            raise NotFoundError("Organization unit not found")
        if name is not None:
            if not name.strip():
                raise ValidationError("Unit name cannot be blank")
            unit.name = name.strip()
        if code is not None:
            unit.code = code
        if is_active is not None:
            unit.is_active = bool(is_active)
        commit_versioned(STALE_UNIT)
        return unit

    return run_with_retry(_op)


def move_unit(unit_id: int, new_parent_id: int) -> OrganizationUnit:
    """Re-parent a unit and its subtree."""
    def _op():
        unit = lock_for_update(db.session.query(OrganizationUnit).filter_by(id=unit_id)).first()
        if not unit:
            raise NotFoundError("Organization unit not found")
        if unit.parent_id is None:
            raise StructuralIntegrityError("The root unit cannot be moved")
        if new_parent_id is None:
            raise StructuralIntegrityError("A second root unit is not allowed")
        if new_parent_id == unit.id:
            raise StructuralIntegrityError("A unit cannot be its own parent")

        parent = _validate_parent(unit.tenant_id, new_parent_id, unit.level)

        parent_chain = get_ancestors(parent.id, include_self=True)
        if any(u.id == unit.id for u in parent_chain):
            raise StructuralIntegrityError("Move would create a cycle")

        height = _subtree_height(unit.id, _children_map(unit.tenant_id))
        if len(parent_chain) + 1 + height > _max_depth():
            raise StructuralIntegrityError(f"Hierarchy cannot exceed {_max_depth()} levels")

        previous_parent_id = unit.parent_id
        unit.parent_id = parent.id
        commit_versioned(STALE_UNIT)

        logger.info(
            "Organization unit moved",
            extra={"unit_id": unit.id, "previous_parent_id": previous_parent_id, "parent_id": parent.id},
        )
        return unit

    return run_with_retry(_op)


# -- Roles --

def create_role(
    tenant_id: int,
    name: str,
    *,
    level: int = 0,
    is_leadership: bool = False,
    english_name: str | None = None,
    description: str | None = None,
) -> OrganizationRole:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Role name is required")

    if db.session.query(OrganizationRole).filter_by(tenant_id=tenant_id, name=name).first():
        raise ConflictError(f"Role '{name}' already exists")

    role = OrganizationRole(
        tenant_id=tenant_id,
        name=name,
        level=int(level),
        is_leadership=bool(is_leadership),
        english_name=english_name,
        description=description,
    )
    db.session.add(role)
    db.session.commit()
    return role


def get_role(role_id: int, tenant_id: int | None = None) -> OrganizationRole:
    role = db.session.get(OrganizationRole, role_id)
    if role is None or (tenant_id is not None and role.tenant_id != tenant_id):
        raise NotFoundError("Role not found")
    return role


def update_role(role_id: int, **fields) -> OrganizationRole:
    """
    Edit role metadata. Approval steps already built keep their snapshot.
    """
    allowed = {"level", "is_leadership", "is_active", "english_name", "description"}
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    role = get_role(role_id)
    for key, value in fields.items():
        if key == "level":
            value = int(value)
        elif key in ("is_leadership", "is_active"):
            value = bool(value)
        setattr(role, key, value)
    db.session.commit()
    return role


def list_roles(tenant_id: int, *, active_only: bool = False) -> list[OrganizationRole]:
    query = db.session.query(OrganizationRole).filter_by(tenant_id=tenant_id)
    if active_only:
        query = query.filter(OrganizationRole.is_active.is_(True))
    return query.order_by(OrganizationRole.level.desc(), OrganizationRole.name.asc()).all()


def seed_standard_roles(tenant_id: int) -> int:
    """Create the standard role catalogue; existing names are left alone."""
    existing = {
        name for (name,) in db.session.query(OrganizationRole.name).filter_by(tenant_id=tenant_id).all()
    }
    created = 0
    for name, english_name, level, is_leadership in STANDARD_ROLES:
        if name in existing:
            continue
        db.session.add(
            OrganizationRole(
                tenant_id=tenant_id,
                name=name,
                english_name=english_name,
                level=level,
                is_leadership=is_leadership,
            )
        )
        created += 1
    db.session.commit()
    return created


# -- Bindings --

def _active_bindings(unit_ids: list[int]) -> list[RoleBinding]:
    if not unit_ids:
        return []
    return (
        db.session.query(RoleBinding)
        .join(OrganizationRole, OrganizationRole.id == RoleBinding.role_id)
        .filter(
            RoleBinding.unit_id.in_(unit_ids),
            RoleBinding.is_active.is_(True),
            OrganizationRole.is_active.is_(True),
        )
        .all()
    )


def get_effective_roles(unit_id: int) -> list[EffectiveRole]:
    """
    Roles usable in a unit: direct bindings first, then each ancestor's
    bindings nearest first. A role is reported once, from its nearest source.
    """
    chain = get_ancestors(unit_id, include_self=True)
    by_unit: dict[int, list[RoleBinding]] = {}
    for binding in _active_bindings([u.id for u in chain]):
        by_unit.setdefault(binding.unit_id, []).append(binding)

    result: list[EffectiveRole] = []
    seen: set[int] = set()
    for source in chain:
        bindings = sorted(by_unit.get(source.id, []), key=lambda b: (-b.role.level, b.role.name))
        for binding in bindings:
            if binding.role_id in seen:
                continue
            seen.add(binding.role_id)
            result.append(
                EffectiveRole(
                    role=binding.role,
                    is_direct=source.id == unit_id,
                    source_unit_id=source.id,
                    source_unit_name=source.name,
                )
            )
    return result


def is_role_available(unit_id: int, role_id: int) -> bool:
    return any(er.role.id == role_id for er in get_effective_roles(unit_id))


def _bind(unit_id: int, role_id: int, actor_user_id: int | None) -> bool:
    """Create or reactivate a direct binding. Returns True if anything changed."""
    binding = db.session.query(RoleBinding).filter_by(unit_id=unit_id, role_id=role_id).first()
    if binding is None:
        db.session.add(RoleBinding(unit_id=unit_id, role_id=role_id, created_by_user_id=actor_user_id))
        return True
    if not binding.is_active:
        binding.is_active = True
        return True
    return False


def assign_role(
    unit_id: int,
    role_ids: list[int],
    *,
    replace_existing: bool = False,
    propagate_to_descendants: bool = False,
    actor_user_id: int | None = None,
) -> AssignResult:
    """
    Bind roles to a unit in one transaction.

    replace_existing: the direct set becomes exactly role_ids.
    propagate_to_descendants: also create direct bindings at every descendant.
    """
    def _op():
        unit = lock_for_update(db.session.query(OrganizationUnit).filter_by(id=unit_id)).first()
        if not unit:
            raise NotFoundError("Organization unit not found")

        wanted = list(dict.fromkeys(int(r) for r in role_ids))
        roles = db.session.query(OrganizationRole).filter(OrganizationRole.id.in_(wanted)).all() if wanted else []
        found = {r.id for r in roles if r.tenant_id == unit.tenant_id}
        missing = [r for r in wanted if r not in found]
        if missing:
            raise NotFoundError(f"Roles not found: {', '.join(str(m) for m in missing)}")

        result = AssignResult(unit_id=unit.id)

        if replace_existing:
            current = db.session.query(RoleBinding).filter_by(unit_id=unit.id, is_active=True).all()
            for binding in current:
                if binding.role_id not in found:
                    binding.is_active = False
                    result.removed_role_ids.append(binding.role_id)

        for role_id in wanted:
            _bind(unit.id, role_id, actor_user_id)
            result.bound_role_ids.append(role_id)

        if propagate_to_descendants:
            for descendant_id in get_descendant_ids(unit.id, include_self=False):
                changed = False
                for role_id in wanted:
                    changed = _bind(descendant_id, role_id, actor_user_id) or changed
                if changed:
                    result.propagated_unit_ids.append(descendant_id)

        db.session.commit()

        logger.info(
            "Roles assigned",
            extra={
                "unit_id": unit.id,
                "role_ids": wanted,
                "replace_existing": replace_existing,
                "propagated_units": len(result.propagated_unit_ids),
            },
        )
        return result

    return run_with_retry(_op)


def unassign_role(unit_id: int, role_id: int) -> UnassignResult:
    """
    Remove a direct binding. A role the unit only inherits cannot be
    removed here; that is reported, not raised.
    """
    def _op():
        get_unit(unit_id)
        binding = lock_for_update(
            db.session.query(RoleBinding).filter_by(unit_id=unit_id, role_id=role_id, is_active=True)
        ).first()

        if binding is not None:
            binding.is_active = False
            db.session.commit()
            logger.info("Role unassigned", extra={"unit_id": unit_id, "role_id": role_id})
            return UnassignResult(changed=True, reason=UNASSIGN_REMOVED)

        if is_role_available(unit_id, role_id):
            return UnassignResult(changed=False, reason=UNASSIGN_INHERITED_ONLY)
        return UnassignResult(changed=False, reason=UNASSIGN_NOT_BOUND)

    return run_with_retry(_op)

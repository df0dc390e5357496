import secrets
import time
from flask import request, jsonify, current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from app.extensions import db
from app.models.field_models import FieldDefinition, CATEGORY_META, VALID_CATEGORIES, VALID_FIELD_TYPES, NAME_PATTERN
from app.models.form_models import FormField
from app.services.address_expander import ADDRESS_BLOCK_SIZE, expand_address_field, plan_linked_fields
from app.services.field_config import FieldConfigError, parse_config, validate_config, validate_rules
from app.services.form_layout import default_linked_span
from app.utils.decorators import audit_context, current_user_id

SORTABLE_COLUMNS = {
    'name': FieldDefinition.name,
    'label': FieldDefinition.label,
    'sortOrder': FieldDefinition.sort_order,
    'createdAt': FieldDefinition.created_at,
}

# Client key -> column for PATCH; "name" is deliberately absent
UPDATABLE_TEXT = {'label': 'label', 'description': 'description'}
UPDATABLE_FLAGS = {
    'isActive': 'is_active',
    'specialPersonalInfo': 'special_personal_info',
    'requiresExplicitConsent': 'requires_explicit_consent',
}


def _paging(default_limit, max_limit):
    page = max(1, request.args.get('page', 1, type=int) or 1)
    limit = request.args.get('limit', default_limit, type=int) or default_limit
    return page, min(max_limit, max(1, limit))


def _flag_arg(name):
    value = request.args.get(name, 'all')
    if value == 'true':
        return True
    if value == 'false':
        return False
    return None


def _search_filter(query, search):
    pattern = f'%{search}%'
    return query.filter(or_(
        FieldDefinition.name.ilike(pattern),
        FieldDefinition.label.ilike(pattern),
        FieldDefinition.description.ilike(pattern),
    ))


def _pagination(pagination, page, limit):
    return {
        'page': page,
        'limit': limit,
        'totalCount': pagination.total,
        'totalPages': pagination.pages,
        'hasNextPage': pagination.has_next,
        'hasPrevPage': pagination.has_prev,
    }


def _next_sort_order(category):
    current_max = db.session.query(func.max(FieldDefinition.sort_order)).filter(
        FieldDefinition.category == category
    ).scalar()
    return (current_max or 0) + 1


def _make_room(category, position, size):
    """Shifts every field at or after ``position`` down by ``size``, keeping their order."""
    FieldDefinition.query.filter(
        FieldDefinition.category == category,
        FieldDefinition.sort_order >= position,
    ).update({FieldDefinition.sort_order: FieldDefinition.sort_order + size}, synchronize_session='fetch')


def _linked_field_error(linked, category):
    """Every linked name must resolve to an existing field in the parent's category."""
    if not linked:
        return None
    found = {f.name: f for f in FieldDefinition.query.filter(FieldDefinition.name.in_(set(linked.values())))}
    for role, name in linked.items():
        target = found.get(name)
        if not target:
            return f"linkedFields.{role} references unknown field '{name}'"
        if target.category != category:
            return f"linkedFields.{role} references '{name}' in category '{target.category}', expected '{category}'"
    return None


def _address_parents_of(field):
    parents = FieldDefinition.query.filter(
        FieldDefinition.field_type == 'address',
        FieldDefinition.category == field.category,
        FieldDefinition.id != field.id,
    ).all()
    return [p for p in parents if field.name in p.linked_field_names.values()]


def _remove_or_deactivate(field):
    """Fields used by any form are deactivated; unused ones are deleted outright."""
    if field.form_fields.count() > 0:
        field.is_active = False
        return 'deactivated'
    db.session.delete(field)
    return 'deleted'


def list_fields():
    """Admin view of the whole library, including inactive fields."""
    try:
        page, limit = _paging(50, 200)
        query = FieldDefinition.query

        category = request.args.get('category')
        if category in VALID_CATEGORIES:
            query = query.filter(FieldDefinition.category == category)
        field_type = request.args.get('fieldType')
        if field_type in VALID_FIELD_TYPES:
            query = query.filter(FieldDefinition.field_type == field_type)
        is_active = _flag_arg('isActive')
        if is_active is not None:
            query = query.filter(FieldDefinition.is_active == is_active)
        special = _flag_arg('specialPersonalInfo')
        if special is not None:
            query = query.filter(FieldDefinition.special_personal_info == special)
        search = (request.args.get('search') or '').strip()
        if search:
            query = _search_filter(query, search)

        descending = request.args.get('sortOrder') == 'desc'
        column = SORTABLE_COLUMNS.get(request.args.get('sortBy'))
        if column is not None:
            query = query.order_by(column.desc() if descending else column.asc())
        else:
            category_order = FieldDefinition.category.desc() if descending else FieldDefinition.category.asc()
            query = query.order_by(category_order, FieldDefinition.sort_order.asc())

        pagination = query.paginate(page=page, per_page=limit, error_out=False)

        counts_query = db.session.query(FieldDefinition.category, func.count(FieldDefinition.id))
        if is_active is not None:
            counts_query = counts_query.filter(FieldDefinition.is_active == is_active)
        category_counts = dict(counts_query.group_by(FieldDefinition.category).all())

        return jsonify({
            'data': [f.to_dict(include_usage=True) for f in pagination.items],
            'pagination': _pagination(pagination, page, limit),
            'meta': {
                'categories': list(VALID_CATEGORIES),
                'fieldTypes': list(VALID_FIELD_TYPES),
                'categoryCounts': category_counts,
            },
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list fields")
        return jsonify({'error': 'Failed to fetch fields'}), 500


def get_categories():
    try:
        def counts(*criteria):
            rows = db.session.query(FieldDefinition.category, func.count(FieldDefinition.id)).filter(
                *criteria
            ).group_by(FieldDefinition.category).all()
            return dict(rows)

        totals = counts()
        active = counts(FieldDefinition.is_active.is_(True))
        special = counts(FieldDefinition.special_personal_info.is_(True))

        categories = [
            {
                'key': key,
                **meta,
                'fieldCount': totals.get(key, 0),
                'activeFieldCount': active.get(key, 0),
                'specialInfoCount': special.get(key, 0),
            }
            for key, meta in CATEGORY_META.items()
        ]
        categories.sort(key=lambda c: (c['tier'] != 'core', c['displayName']))

        total_fields = sum(totals.values())
        total_active = sum(active.values())
        return jsonify({
            'data': {
                'categories': categories,
                'summary': {
                    'totalCategories': len(categories),
                    'coreCategories': sum(1 for c in categories if c['tier'] == 'core'),
                    'industryCategories': sum(1 for c in categories if c['tier'] == 'industry'),
                    'totalFields': total_fields,
                    'totalActiveFields': total_active,
                    'totalInactiveFields': total_fields - total_active,
                    'totalSpecialInfoFields': sum(special.values()),
                },
            },
        }), 200
    except Exception:
        current_app.logger.exception("Failed to fetch field categories")
        return jsonify({'error': 'Failed to fetch categories'}), 500


def create_field():
    data = request.get_json(silent=True) or {}

    for key in ('name', 'label', 'description'):
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            return jsonify({'error': f'{key.capitalize()} is required'}), 400
    field_type = data.get('fieldType')
    if field_type not in VALID_FIELD_TYPES:
        return jsonify({'error': f"Invalid field type. Must be one of: {', '.join(VALID_FIELD_TYPES)}"}), 400
    category = data.get('category')
    if category not in VALID_CATEGORIES:
        return jsonify({'error': f"Invalid category. Must be one of: {', '.join(VALID_CATEGORIES)}"}), 400

    name = data['name'].strip()
    if not NAME_PATTERN.match(name):
        return jsonify({'error': 'Name must be camelCase (start with lowercase letter, alphanumeric only)'}), 400
    if FieldDefinition.query.filter_by(name=name).first():
        return jsonify({'error': 'A field with this name already exists'}), 409

    try:
        config = validate_config(field_type, data.get('config')).to_json()
        rules = validate_rules(data.get('validation'))
    except FieldConfigError as e:
        return jsonify({'error': str(e)}), 400

    block_size = ADDRESS_BLOCK_SIZE if field_type == 'address' else 1
    position = data.get('sortOrder')
    if position is not None and (isinstance(position, bool) or not isinstance(position, int) or position < 0):
        return jsonify({'error': 'sortOrder must be a non-negative integer'}), 400

    after_id = data.get('insertAfterFieldId')
    if after_id is not None and (isinstance(after_id, bool) or not isinstance(after_id, int)):
        return jsonify({'error': 'insertAfterFieldId must be an integer'}), 400

    try:
        if after_id is not None:
            anchor = db.session.get(FieldDefinition, after_id)
            if not anchor or anchor.category != category:
                return jsonify({'error': 'insertAfterFieldId must reference a field in the same category'}), 400
            position = anchor.sort_order + 1

        if position is None:
            position = _next_sort_order(category)
        else:
            _make_room(category, position, block_size)

        field = FieldDefinition(
            name=name,
            label=data['label'].strip(),
            description=data['description'].strip(),
            field_type=field_type,
            category=category,
            config=config or None,
            validation=rules,
            sort_order=position,
            is_active=data.get('isActive', True) is not False,
            special_personal_info=bool(data.get('specialPersonalInfo', False)),
            requires_explicit_consent=bool(data.get('requiresExplicitConsent', False)),
            created_by=current_user_id(),
        )
        db.session.add(field)
        db.session.flush()

        linked = []
        if field_type == 'address':
            created, skipped = expand_address_field(field, created_by=current_user_id())
            linked = created
            if skipped:
                current_app.logger.info(
                    f"Address field '{name}' reused existing sub-fields: {', '.join(f.name for f in skipped)}"
                )

        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'A field with this name already exists'}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create field")
        return jsonify({'error': 'Failed to create field'}), 500

    audit_context(resource_id=field.id, fieldName=field.name, category=category,
                  fieldType=field_type, linkedFieldsCreated=len(linked))
    result = field.to_dict()
    if linked:
        result['linkedFieldsCreated'] = [f.to_dict() for f in linked]
    return jsonify({'data': result}), 201


def get_field(field_id):
    field = db.session.get(FieldDefinition, field_id)
    if not field:
        return jsonify({'error': 'Field not found'}), 404

    usages = (
        FormField.query.filter_by(field_definition_id=field.id)
        .limit(20)
        .all()
    )
    result = field.to_dict(include_usage=True)
    result['usedIn'] = [
        {
            'formTemplateId': ff.form_template_id,
            'formTitle': ff.form_template.title,
            'organizationId': ff.form_template.organization_id,
        }
        for ff in usages
    ]
    return jsonify({'data': result}), 200


def update_field(field_id):
    field = db.session.get(FieldDefinition, field_id)
    if not field:
        return jsonify({'error': 'Field not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'name' in data and data['name'] != field.name:
        return jsonify({'error': 'Field name cannot be changed'}), 400

    updates = {}
    for key, column in UPDATABLE_TEXT.items():
        if key in data:
            value = data[key]
            if not isinstance(value, str) or not value.strip():
                return jsonify({'error': f'{key.capitalize()} cannot be empty'}), 400
            updates[column] = value.strip()

    field_type = data.get('fieldType', field.field_type)
    if 'fieldType' in data:
        if field_type not in VALID_FIELD_TYPES:
            return jsonify({'error': 'Invalid field type'}), 400
        updates['field_type'] = field_type
    if 'category' in data:
        if data['category'] not in VALID_CATEGORIES:
            return jsonify({'error': 'Invalid category'}), 400
        updates['category'] = data['category']

    try:
        if 'config' in data or 'fieldType' in data:
            raw = data['config'] if 'config' in data else field.config
            updates['config'] = validate_config(field_type, raw).to_json() or None
        if 'validation' in data:
            updates['validation'] = validate_rules(data['validation'])
    except FieldConfigError as e:
        return jsonify({'error': str(e)}), 400

    category = updates.get('category', field.category)
    if field_type == 'address' and ('config' in data or 'fieldType' in data or 'category' in data):
        linked = parse_config('address', updates.get('config', field.config)).linked_fields
        error = _linked_field_error(linked, category)
        if error:
            return jsonify({'error': error}), 400
    if category != field.category and _address_parents_of(field):
        return jsonify({'error': 'Field is linked to an address field and must stay in its category'}), 400

    if 'sortOrder' in data:
        order = data['sortOrder']
        if isinstance(order, bool) or not isinstance(order, int) or order < 0:
            return jsonify({'error': 'sortOrder must be a non-negative integer'}), 400
        updates['sort_order'] = order

    for key, column in UPDATABLE_FLAGS.items():
        if key in data:
            updates[column] = bool(data[key])

    if not updates:
        return jsonify({'error': 'No valid fields to update'}), 400

    try:
        for column, value in updates.items():
            setattr(field, column, value)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to update field {field_id}")
        return jsonify({'error': 'Failed to update field'}), 500

    audit_context(resource_id=field.id, fieldName=field.name, changes=sorted(updates))
    return jsonify({'data': field.to_dict(include_usage=True)}), 200


def delete_field(field_id):
    field = db.session.get(FieldDefinition, field_id)
    if not field:
        return jsonify({'error': 'Field not found'}), 404

    delete_linked = request.args.get('deleteLinked') == 'true'
    try:
        linked_results = {}
        if delete_linked:
            for linked_name in field.linked_field_names.values():
                linked = FieldDefinition.query.filter_by(name=linked_name).first()
                if linked and linked.id != field.id:
                    linked_results[linked_name] = _remove_or_deactivate(linked)
        name = field.name
        outcome = _remove_or_deactivate(field)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"Failed to delete field {field_id}")
        return jsonify({'error': 'Failed to delete field'}), 500

    audit_context(resource_id=field_id, fieldName=name, outcome=outcome, linked=linked_results)
    return jsonify({
        'message': f'Field {outcome}',
        'outcome': outcome,
        'linkedFields': linked_results,
    }), 200


def reorder_fields():
    """Rewrites sort orders of one category to match the given id sequence."""
    data = request.get_json(silent=True) or {}
    category = data.get('category')
    field_ids = data.get('fieldIds')

    if category not in VALID_CATEGORIES:
        return jsonify({'error': 'Invalid category'}), 400
    if not isinstance(field_ids, list) or not field_ids:
        return jsonify({'error': 'fieldIds must be a non-empty list'}), 400
    if len(set(field_ids)) != len(field_ids):
        return jsonify({'error': 'fieldIds must not contain duplicates'}), 400

    fields = FieldDefinition.query.filter(
        FieldDefinition.id.in_(field_ids),
        FieldDefinition.category == category,
    ).all()
    by_id = {f.id: f for f in fields}
    missing = [fid for fid in field_ids if fid not in by_id]
    if missing:
        return jsonify({
            'error': 'Some fields were not found or do not belong to this category',
            'missingIds': missing,
        }), 400

    try:
        for index, fid in enumerate(field_ids):
            by_id[fid].sort_order = index
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reorder fields")
        return jsonify({'error': 'Failed to reorder fields'}), 500

    audit_context(resource_id=category, category=category, count=len(field_ids))
    return jsonify({'message': 'Fields reordered', 'updatedCount': len(field_ids)}), 200


def list_provider_fields():
    """Active fields only, for the provider form builder."""
    try:
        page, limit = _paging(50, 200)
        query = FieldDefinition.query.filter(FieldDefinition.is_active.is_(True))
        category = request.args.get('category')
        if category:
            query = query.filter(FieldDefinition.category == category)
        field_type = request.args.get('fieldType')
        if field_type:
            query = query.filter(FieldDefinition.field_type == field_type)
        search = (request.args.get('search') or '').strip()
        if search:
            query = _search_filter(query, search)

        pagination = query.order_by(
            FieldDefinition.category.asc(), FieldDefinition.sort_order.asc(), FieldDefinition.label.asc()
        ).paginate(page=page, per_page=limit, error_out=False)

        return jsonify({
            'fields': [f.to_dict() for f in pagination.items],
            'pagination': _pagination(pagination, page, limit),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list provider fields")
        return jsonify({'error': 'Failed to list fields'}), 500


def get_linked_fields():
    parent_id = request.args.get('parentFieldId', type=int)
    if not parent_id:
        return jsonify({'error': 'parentFieldId is required'}), 400

    parent = db.session.get(FieldDefinition, parent_id)
    if not parent:
        return jsonify({'error': 'Parent field not found'}), 404
    if parent.field_type != 'address':
        return jsonify({'linkedFields': []}), 200

    roles_by_name = {name: role for role, name in parent.linked_field_names.items()}
    if not roles_by_name:
        # Rows created before linkage was recorded: fall back to the derived names
        roles_by_name = {plan.name: plan.role for plan in plan_linked_fields(parent.name, parent.label)}

    linked = FieldDefinition.query.filter(
        FieldDefinition.name.in_(list(roles_by_name)),
        FieldDefinition.is_active.is_(True),
    ).order_by(FieldDefinition.sort_order.asc()).all()

    return jsonify({
        'parentField': {
            'id': parent.id,
            'name': parent.name,
            'label': parent.label,
            'fieldType': parent.field_type,
        },
        'groupId': f'group-{int(time.time() * 1000)}-{secrets.token_hex(3)}',
        'linkedFields': [
            {
                **f.to_dict(),
                'role': roles_by_name.get(f.name),
                'suggestedColumnSpan': default_linked_span(roles_by_name.get(f.name)),
            }
            for f in linked
        ],
    }), 200

import csv
import json
from datetime import datetime, timedelta
from io import StringIO
from flask import request, jsonify, current_app, Response
from app.extensions import db
from app.models.system_models import AuditLog

EXPORT_ROW_LIMIT = 10000
EXPORT_COLUMNS = [
    'Timestamp', 'Action', 'Resource Type', 'Resource ID', 'User Name',
    'User Email', 'Organization', 'IP Address', 'User Agent', 'Metadata',
]


class AuditFilterError(ValueError):
    pass


def _parse_date(value, end_of_day=False):
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        raise AuditFilterError(f'Invalid date: {value}')
    # A bare date as the upper bound covers the whole day
    if end_of_day and len(value) == 10:
        parsed += timedelta(days=1)
    return parsed


def _filtered_query():
    """Applies the shared query-string filters of the list and export endpoints."""
    args = request.args
    query = AuditLog.query

    if args.get('action'):
        query = query.filter(AuditLog.action == args['action'])
    if args.get('resourceType'):
        query = query.filter(AuditLog.resource_type == args['resourceType'])
    if args.get('resourceId'):
        query = query.filter(AuditLog.resource_id == args['resourceId'])
    for arg, column in (('userId', AuditLog.user_id), ('organizationId', AuditLog.organization_id)):
        if args.get(arg):
            try:
                query = query.filter(column == int(args[arg]))
            except ValueError:
                raise AuditFilterError(f'{arg} must be an integer')
    if args.get('startDate'):
        query = query.filter(AuditLog.created_at >= _parse_date(args['startDate']))
    if args.get('endDate'):
        end = _parse_date(args['endDate'], end_of_day=True)
        query = query.filter(AuditLog.created_at < end if len(args['endDate']) == 10 else AuditLog.created_at <= end)
    search = (args.get('search') or '').strip()
    if search:
        query = query.filter(db.cast(AuditLog.event_metadata, db.String).ilike(f'%{search}%'))

    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())


def list_audit_logs():
    try:
        page = max(1, request.args.get('page', 1, type=int) or 1)
        limit = min(100, max(1, request.args.get('limit', 50, type=int) or 50))
        pagination = _filtered_query().paginate(page=page, per_page=limit, error_out=False)
    except AuditFilterError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list audit logs")
        return jsonify({'error': 'Failed to fetch audit logs'}), 500

    return jsonify({
        'data': [log.to_dict() for log in pagination.items],
        'pagination': {
            'page': page,
            'limit': limit,
            'totalCount': pagination.total,
            'totalPages': pagination.pages,
            'hasNextPage': pagination.has_next,
            'hasPrevPage': pagination.has_prev,
        },
    }), 200


def export_audit_logs():
    """Streams the filtered audit trail as CSV, newest first."""
    try:
        logs = _filtered_query().limit(EXPORT_ROW_LIMIT).all()
    except AuditFilterError as e:
        return jsonify({'error': str(e)}), 400

    si = StringIO()
    cw = csv.writer(si)
    cw.writerow(EXPORT_COLUMNS)
    for log in logs:
        user = log.user
        cw.writerow([
            log.created_at.isoformat() if log.created_at else '',
            log.action,
            log.resource_type or '',
            log.resource_id or '',
            (user.plain_name or '') if user else '',
            (user.plain_email or '') if user else '',
            log.organization.name if log.organization else '',
            log.ip_address or '',
            log.user_agent or '',
            json.dumps(log.event_metadata) if log.event_metadata else '',
        ])

    filename = f"audit-logs-{datetime.utcnow().strftime('%Y-%m-%d')}.csv"
    return Response(
        si.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )

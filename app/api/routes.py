from flask_jwt_extended import jwt_required
from . import api_bp
from app.extensions import limiter
from app.utils.decorators import audit_log, require_permission, require_membership
from .controllers import auth_controller, field_controller, form_controller, qr_controller
from .controllers import public_form_controller, profile_controller, provider_controller
from .controllers import audit_controller, docuseal_controller, submission_controller


# --- Authentication Endpoints ---
@api_bp.route('/auth/register', methods=['POST'])
@limiter.limit("5 per hour")
@audit_log("USER_REGISTRATION", "users")
def register():
    return auth_controller.register_user()

@api_bp.route('/auth/login', methods=['POST'])
@limiter.limit("10 per minute")
@audit_log("USER_LOGIN", "authentication")
def login():
    return auth_controller.login_user()

@api_bp.route('/auth/logout', methods=['POST'])
@jwt_required()
@audit_log("USER_LOGOUT", "authentication")
def logout():
    return auth_controller.logout_user()

@api_bp.route('/auth/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    return auth_controller.refresh_token()

@api_bp.route('/auth/me', methods=['GET'])
@jwt_required()
def current_user_route():
    return auth_controller.get_current_user()


# --- Field Library (admin) ---
@api_bp.route('/admin/fields', methods=['GET'])
@jwt_required()
@require_permission('fields', 'admin')
def list_fields():
    return field_controller.list_fields()

@api_bp.route('/admin/fields', methods=['POST'])
@jwt_required()
@audit_log("CREATE_FIELD", "field_definition")
@require_permission('fields', 'admin')
def create_field():
    return field_controller.create_field()

@api_bp.route('/admin/fields/categories', methods=['GET'])
@jwt_required()
@require_permission('fields', 'admin')
def field_categories():
    return field_controller.get_categories()

@api_bp.route('/admin/fields/reorder', methods=['POST'])
@jwt_required()
@audit_log("REORDER_FIELDS", "field_definition")
@require_permission('fields', 'admin')
def reorder_fields():
    return field_controller.reorder_fields()

@api_bp.route('/admin/fields/<int:field_id>', methods=['GET'])
@jwt_required()
@require_permission('fields', 'admin')
def get_field(field_id):
    return field_controller.get_field(field_id)

@api_bp.route('/admin/fields/<int:field_id>', methods=['PATCH'])
@jwt_required()
@audit_log("UPDATE_FIELD", "field_definition")
@require_permission('fields', 'admin')
def update_field(field_id):
    return field_controller.update_field(field_id)

@api_bp.route('/admin/fields/<int:field_id>', methods=['DELETE'])
@jwt_required()
@audit_log("DELETE_FIELD", "field_definition")
@require_permission('fields', 'admin')
def delete_field(field_id):
    return field_controller.delete_field(field_id)


# --- Provider Administration ---
@api_bp.route('/admin/providers', methods=['GET'])
@jwt_required()
@require_permission('providers', 'admin')
def list_providers():
    return provider_controller.list_providers()

@api_bp.route('/admin/providers/<int:org_id>', methods=['GET'])
@jwt_required()
@require_permission('providers', 'admin')
def get_provider(org_id):
    return provider_controller.get_provider(org_id)

@api_bp.route('/admin/providers/<int:org_id>/approve', methods=['POST'])
@jwt_required()
@audit_log("APPROVE_PROVIDER", "organization")
@require_permission('providers', 'admin')
def approve_provider(org_id):
    return provider_controller.approve_provider(org_id)

@api_bp.route('/admin/providers/<int:org_id>/reject', methods=['POST'])
@jwt_required()
@audit_log("REJECT_PROVIDER", "organization")
@require_permission('providers', 'admin')
def reject_provider(org_id):
    return provider_controller.reject_provider(org_id)


# --- Audit Trail ---
@api_bp.route('/admin/audit', methods=['GET'])
@jwt_required()
@require_permission('audit', 'read')
def list_audit_logs():
    return audit_controller.list_audit_logs()

@api_bp.route('/admin/audit/export', methods=['GET'])
@jwt_required()
@audit_log("EXPORT_AUDIT_LOGS", "audit_log")
@require_permission('audit', 'read')
def export_audit_logs():
    return audit_controller.export_audit_logs()


# --- Provider: field picker and practice ---
@api_bp.route('/provider/fields', methods=['GET'])
@jwt_required()
@require_membership()
def provider_fields():
    return field_controller.list_provider_fields()

@api_bp.route('/provider/fields/linked', methods=['GET'])
@jwt_required()
@require_membership()
def provider_linked_fields():
    return field_controller.get_linked_fields()

@api_bp.route('/provider/settings', methods=['GET'])
@jwt_required()
@require_membership()
def provider_settings():
    return provider_controller.get_settings()

@api_bp.route('/provider/settings', methods=['PATCH'])
@jwt_required()
@audit_log("UPDATE_ORGANIZATION", "organization")
@require_membership(owner_only=True)
def update_provider_settings():
    return provider_controller.update_settings()

@api_bp.route('/provider/save-registration', methods=['POST'])
@limiter.limit("10 per hour")
@audit_log("SAVE_PROVIDER_REGISTRATION", "pending_registration")
def save_provider_registration():
    return provider_controller.save_registration()

@api_bp.route('/provider/complete-registration', methods=['POST'])
@jwt_required()
@audit_log("CREATE_ORGANIZATION", "organization")
def complete_provider_registration():
    return provider_controller.complete_registration()


# --- Provider: form templates ---
@api_bp.route('/provider/forms', methods=['GET'])
@jwt_required()
@require_membership()
def list_forms():
    return form_controller.list_forms()

@api_bp.route('/provider/forms', methods=['POST'])
@jwt_required()
@audit_log("CREATE_FORM", "form_template")
@require_membership()
def create_form():
    return form_controller.create_form()

@api_bp.route('/provider/forms/<int:form_id>', methods=['GET'])
@jwt_required()
@require_membership()
def get_form(form_id):
    return form_controller.get_form(form_id)

@api_bp.route('/provider/forms/<int:form_id>', methods=['PATCH'])
@jwt_required()
@audit_log("UPDATE_FORM", "form_template")
@require_membership()
def update_form(form_id):
    return form_controller.update_form(form_id)

@api_bp.route('/provider/forms/<int:form_id>', methods=['DELETE'])
@jwt_required()
@audit_log("DELETE_FORM", "form_template")
@require_membership()
def delete_form(form_id):
    return form_controller.delete_form(form_id)


# --- Provider: QR codes ---
@api_bp.route('/provider/forms/<int:form_id>/qr', methods=['GET'])
@jwt_required()
@require_membership()
def list_qr_codes(form_id):
    return qr_controller.list_qr_codes(form_id)

@api_bp.route('/provider/forms/<int:form_id>/qr', methods=['POST'])
@jwt_required()
@audit_log("CREATE_QR_CODE", "qr_code")
@require_membership()
def create_qr_code(form_id):
    return qr_controller.create_qr_code(form_id)

@api_bp.route('/provider/forms/<int:form_id>/qr/<int:qr_id>', methods=['GET'])
@jwt_required()
@require_membership()
def get_qr_code(form_id, qr_id):
    return qr_controller.get_qr_code(form_id, qr_id)

@api_bp.route('/provider/forms/<int:form_id>/qr/<int:qr_id>', methods=['PATCH'])
@jwt_required()
@audit_log("UPDATE_QR_CODE", "qr_code")
@require_membership()
def update_qr_code(form_id, qr_id):
    return qr_controller.update_qr_code(form_id, qr_id)

@api_bp.route('/provider/forms/<int:form_id>/qr/<int:qr_id>', methods=['DELETE'])
@jwt_required()
@audit_log("DEACTIVATE_QR_CODE", "qr_code")
@require_membership()
def delete_qr_code(form_id, qr_id):
    return qr_controller.delete_qr_code(form_id, qr_id)


# --- Provider: submissions ---
@api_bp.route('/provider/submissions', methods=['GET'])
@jwt_required()
@require_membership()
def list_provider_submissions():
    return submission_controller.list_submissions()

@api_bp.route('/provider/submissions/<int:submission_id>', methods=['GET'])
@jwt_required()
@audit_log("VIEW_SUBMISSION", "submission")
@require_membership()
def get_provider_submission(submission_id):
    return submission_controller.get_submission(submission_id)


# --- Provider: DocuSeal ---
@api_bp.route('/provider/forms/<int:form_id>/docuseal', methods=['GET'])
@jwt_required()
@require_membership()
def get_docuseal_config(form_id):
    return docuseal_controller.get_docuseal_config(form_id)

@api_bp.route('/provider/forms/<int:form_id>/docuseal', methods=['PUT'])
@jwt_required()
@audit_log("UPDATE_DOCUSEAL_CONFIG", "form_template")
@require_membership()
def update_docuseal_config(form_id):
    return docuseal_controller.update_docuseal_config(form_id)


# --- Public check-in ---
@api_bp.route('/public/forms/<short_code>', methods=['GET'])
@jwt_required(optional=True)
def get_public_form(short_code):
    return public_form_controller.get_public_form(short_code)

@api_bp.route('/public/forms/<short_code>/submit', methods=['POST'])
@jwt_required(optional=True)
@limiter.limit("10 per minute")
@audit_log("SUBMIT_FORM", "submission")
def submit_public_form(short_code):
    return public_form_controller.submit_form(short_code)

@api_bp.route('/public/submissions/<int:submission_id>/signing', methods=['POST'])
@jwt_required(optional=True)
@limiter.limit("10 per minute")
@audit_log("START_SIGNING", "submission")
def start_signing(submission_id):
    return docuseal_controller.start_signing(submission_id)


# --- Patient ---
@api_bp.route('/patient/profile', methods=['GET'])
@jwt_required()
def get_patient_profile():
    return profile_controller.get_profile()

@api_bp.route('/patient/profile', methods=['PUT'])
@jwt_required()
@audit_log("UPDATE_PROFILE", "patient_profile")
def update_patient_profile():
    return profile_controller.update_profile()

@api_bp.route('/patient/profile/sync', methods=['POST'])
@jwt_required()
@audit_log("SYNC_PROFILE", "patient_profile")
def sync_patient_profile():
    return profile_controller.sync_profile()

@api_bp.route('/patient/link-submission', methods=['POST'])
@jwt_required()
@audit_log("LINK_SUBMISSION", "submission")
def link_submission():
    return profile_controller.link_submission()

@api_bp.route('/patient/submissions', methods=['GET'])
@jwt_required()
def list_patient_submissions():
    return profile_controller.list_submissions()

@api_bp.route('/patient/submissions/<int:submission_id>/withdraw-consent', methods=['POST'])
@jwt_required()
@audit_log("WITHDRAW_CONSENT", "submission")
def withdraw_consent(submission_id):
    return profile_controller.withdraw_consent(submission_id)


# --- Webhooks ---
@api_bp.route('/webhooks/docuseal', methods=['POST'])
@audit_log("COMPLETE_SIGNING", "submission")
def docuseal_webhook():
    return docuseal_controller.handle_webhook()

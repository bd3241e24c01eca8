"""Financial blueprint - JSON API over payments, ledger and reports."""
from datetime import date

from flask import Blueprint, current_app, jsonify, request

from clinic_finance.database import get_session
from clinic_finance.exceptions import ValidationError
from clinic_finance.models import AuditAction
from clinic_finance.services.audit_service import get_audit_logs
from clinic_finance.services.installment_service import InstallmentGenerator
from clinic_finance.services.ledger_service import LedgerRecorder
from clinic_finance.services.overdue_service import OverdueService
from clinic_finance.services.payment_service import PaymentService
from clinic_finance.services.reporting_service import ReportingService
from clinic_finance.services.service_price_service import ServicePriceService
from clinic_finance.utils.serializers import (
    audit_log_to_dict, installment_to_dict, payment_to_dict, service_price_to_dict,
    to_json_safe, transaction_to_dict
)
from clinic_finance.utils.number_format import parse_positive_int

financial_bp = Blueprint('financial', __name__, url_prefix='/api/financial')


def _clock():
    """Date provider; tests may pin it through the FINANCE_CLOCK setting."""
    return current_app.config.get('FINANCE_CLOCK') or date.today


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _payment_service() -> PaymentService:
    return PaymentService(
        get_session(),
        clock=_clock(),
        ledger_category=current_app.config.get('LEDGER_PAYMENT_CATEGORY', 'consultation')
    )


def _overdue_service() -> OverdueService:
    return OverdueService(
        get_session(),
        clock=_clock(),
        critical_days=current_app.config.get('ALERT_CRITICAL_DAYS', 30),
        high_days=current_app.config.get('ALERT_HIGH_DAYS', 14)
    )


def _today():
    return _clock()()


# ----------------------------------------------------------------------
# Payments
# ----------------------------------------------------------------------

@financial_bp.route('/payments', methods=['POST'])
def create_payment():
    """Create a payment (ledger entry and installments included)."""
    payment = _payment_service().create(_json_body())
    return jsonify(payment_to_dict(payment, _today())), 201


@financial_bp.route('/payments/<payment_id>', methods=['GET'])
def get_payment(payment_id):
    payment = _payment_service().get_with_details(payment_id)
    return jsonify(payment_to_dict(payment, _today(), include_details=True))


@financial_bp.route('/payments/<payment_id>', methods=['PUT', 'PATCH'])
def update_payment(payment_id):
    payment = _payment_service().update(payment_id, _json_body())
    return jsonify(payment_to_dict(payment, _today()))


@financial_bp.route('/payments/<payment_id>/process', methods=['POST'])
def process_payment(payment_id):
    """Mark a pending payment as paid."""
    data = _json_body()
    if not data.get('payment_method'):
        raise ValidationError('payment_method is required', field='payment_method')

    result = _payment_service().process_payment(
        payment_id,
        data.get('payment_method'),
        transaction_id=data.get('transaction_id'),
        notes=data.get('notes')
    )
    return jsonify(result)


@financial_bp.route('/payments/<payment_id>/installments', methods=['GET'])
def list_installments(payment_id):
    installments = InstallmentGenerator(get_session(), clock=_clock()).list_for_payment(payment_id)
    today = _today()
    return jsonify([installment_to_dict(item, today) for item in installments])


@financial_bp.route('/payments/<payment_id>/installments', methods=['POST'])
def create_installments(payment_id):
    """Generate the installment schedule of a pending payment."""
    data = _json_body()
    installments = InstallmentGenerator(get_session(), clock=_clock()).create_schedule(
        payment_id,
        data.get('installments'),
        total_amount=data.get('total_amount'),
        start=data.get('start_date')
    )
    today = _today()
    return jsonify([installment_to_dict(item, today) for item in installments]), 201


@financial_bp.route('/installments/<installment_id>/pay', methods=['POST'])
def pay_installment(installment_id):
    data = _json_body()
    installment = InstallmentGenerator(get_session(), clock=_clock()).pay_installment(
        installment_id, paid_at=data.get('paid_at')
    )
    return jsonify(installment_to_dict(installment, _today()))


@financial_bp.route('/installments/<installment_id>', methods=['PUT', 'PATCH'])
def update_installment(installment_id):
    installment = InstallmentGenerator(get_session(), clock=_clock()).update_installment(
        installment_id, _json_body()
    )
    return jsonify(installment_to_dict(installment, _today()))


@financial_bp.route('/appointments/<appointment_id>/payments', methods=['GET'])
def list_appointment_payments(appointment_id):
    payments = _payment_service().list_by_appointment(appointment_id)
    today = _today()
    return jsonify([payment_to_dict(p, today) for p in payments])


@financial_bp.route('/patients/<patient_id>/payments', methods=['GET'])
def list_patient_payments(patient_id):
    payments = _payment_service().list_by_patient(patient_id)
    today = _today()
    return jsonify([payment_to_dict(p, today) for p in payments])


@financial_bp.route('/patients/<patient_id>/summary', methods=['GET'])
def patient_summary(patient_id):
    summary = ReportingService(get_session(), clock=_clock()).get_patient_financial_summary(patient_id)
    return jsonify(to_json_safe(summary))


# ----------------------------------------------------------------------
# Service prices
# ----------------------------------------------------------------------

@financial_bp.route('/service-prices', methods=['GET'])
def list_service_prices():
    include_inactive = request.args.get('include_inactive', '').lower() in ('1', 'true', 'yes')
    prices = ServicePriceService(get_session()).list(active_only=not include_inactive)
    return jsonify([service_price_to_dict(p) for p in prices])


@financial_bp.route('/service-prices', methods=['POST'])
def create_service_price():
    service_price = ServicePriceService(get_session()).create(_json_body())
    return jsonify(service_price_to_dict(service_price)), 201


@financial_bp.route('/service-prices/<service_price_id>', methods=['PUT', 'PATCH'])
def update_service_price(service_price_id):
    service_price = ServicePriceService(get_session()).update(service_price_id, _json_body())
    return jsonify(service_price_to_dict(service_price))


# ----------------------------------------------------------------------
# Ledger and reports
# ----------------------------------------------------------------------

@financial_bp.route('/transactions', methods=['GET'])
def list_transactions():
    transactions = LedgerRecorder(get_session(), clock=_clock()).list_transactions(
        request.args.get('start_date'),
        request.args.get('end_date')
    )
    return jsonify([transaction_to_dict(t) for t in transactions])


@financial_bp.route('/transactions', methods=['POST'])
def create_transaction():
    """Record a manual ledger entry (income or expense)."""
    transaction = LedgerRecorder(get_session(), clock=_clock()).record(_json_body())
    return jsonify(transaction_to_dict(transaction)), 201


@financial_bp.route('/reports/financial-summary', methods=['GET'])
def financial_summary():
    summary = ReportingService(get_session(), clock=_clock()).get_financial_summary(
        request.args.get('start_date'),
        request.args.get('end_date')
    )
    return jsonify(to_json_safe(summary))


@financial_bp.route('/reports/revenue', methods=['GET'])
def revenue():
    result = ReportingService(get_session(), clock=_clock()).calculate_revenue(
        request.args.get('start_date'),
        request.args.get('end_date')
    )
    return jsonify(to_json_safe(result))


@financial_bp.route('/reports/accounts-receivable', methods=['GET'])
def accounts_receivable():
    payments = ReportingService(get_session(), clock=_clock()).get_accounts_receivable()
    today = _today()
    return jsonify([payment_to_dict(p, today, include_details=True) for p in payments])


@financial_bp.route('/reports/overdue-payments', methods=['GET'])
def overdue_payments():
    payments = _overdue_service().list_overdue()
    today = _today()
    return jsonify([payment_to_dict(p, today, include_details=True) for p in payments])


@financial_bp.route('/dashboard', methods=['GET'])
def dashboard():
    data = ReportingService(get_session(), clock=_clock()).get_financial_dashboard(
        request.args.get('start_date'),
        request.args.get('end_date')
    )
    return jsonify(to_json_safe(data))


@financial_bp.route('/alerts', methods=['GET'])
def alerts():
    return jsonify(to_json_safe(_overdue_service().generate_alerts()))


@financial_bp.route('/admin/overdue-count', methods=['GET'])
def overdue_count():
    count = _overdue_service().count_overdue()
    return jsonify({'message': f'Found {count} overdue payments', 'count': count})


@financial_bp.route('/admin/audit-logs', methods=['GET'])
def audit_logs():
    """Audit trail, newest first, filterable by action and resource."""
    limit = min(parse_positive_int(request.args.get('limit'), 'limit', default=100), 500)
    offset = request.args.get('offset', '0')
    if not offset.isdigit():
        raise ValidationError('offset must be a non-negative integer', field='offset')

    action = request.args.get('action')
    if action:
        try:
            action = AuditAction(action.upper())
        except ValueError:
            raise ValidationError(f'Invalid audit action: {action}', field='action')

    entries = get_audit_logs(
        get_session(),
        limit=limit,
        offset=int(offset),
        action_filter=action or None,
        resource_type_filter=request.args.get('resource_type'),
        resource_id_filter=request.args.get('resource_id')
    )
    return jsonify([audit_log_to_dict(entry) for entry in entries])

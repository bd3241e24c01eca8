"""JSON serialization of models and report payloads."""
from datetime import date, datetime
from decimal import Decimal
import enum
import json

from clinic_finance.services.installment_service import effective_installment_status
from clinic_finance.services.overdue_service import is_overdue
from clinic_finance.utils.formatters import payment_method_label, payment_status_label


def to_json_safe(value):
    """
    Recursively convert report values to JSON-friendly types.

    Decimal -> float, date/datetime -> ISO string, Enum -> value.
    """
    if isinstance(value, dict):
        return {key: to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def appointment_summary(appointment) -> dict:
    """Narrow projection of the appointment and its people."""
    if appointment is None:
        return None

    patient = appointment.patient
    doctor = appointment.doctor
    return {
        'id': appointment.id,
        'scheduled_at': to_json_safe(appointment.scheduled_at),
        'patient': {
            'id': patient.id,
            'name': patient.name,
            'cpf': patient.cpf,
            'phone': patient.phone,
        } if patient else None,
        'doctor': {
            'id': doctor.id,
            'name': doctor.name,
        } if doctor else None,
    }


def payment_to_dict(payment, today: date, include_details: bool = False) -> dict:
    data = {
        'id': payment.id,
        'appointment_id': payment.appointment_id,
        'amount': to_json_safe(payment.amount),
        'payment_method': payment.payment_method.value,
        'payment_method_label': payment_method_label(payment.payment_method),
        'status': payment.status.value,
        'status_label': payment_status_label(payment.status, payment.due_date, today),
        'is_overdue': is_overdue(payment, today),
        'payment_date': to_json_safe(payment.payment_date),
        'due_date': to_json_safe(payment.due_date),
        'installments': payment.installments,
        'installment_number': payment.installment_number,
        'recorded_on': to_json_safe(payment.recorded_on),
        'notes': payment.notes,
        'transaction_id': payment.transaction_id,
        'created_at': to_json_safe(payment.created_at),
        'updated_at': to_json_safe(payment.updated_at),
    }
    if include_details:
        data['appointment'] = appointment_summary(payment.appointment)
    return data


def installment_to_dict(installment, today: date) -> dict:
    return {
        'id': installment.id,
        'payment_id': installment.payment_id,
        'installment_number': installment.installment_number,
        'amount': to_json_safe(installment.amount),
        'due_date': to_json_safe(installment.due_date),
        'status': effective_installment_status(installment, today).value,
        'paid_at': to_json_safe(installment.paid_at),
    }


def transaction_to_dict(transaction) -> dict:
    return {
        'id': transaction.id,
        'payment_id': transaction.payment_id,
        'transaction_type': transaction.transaction_type.value,
        'amount': to_json_safe(transaction.amount),
        'description': transaction.description,
        'category': transaction.category,
        'transaction_date': to_json_safe(transaction.transaction_date),
        'created_at': to_json_safe(transaction.created_at),
    }


def service_price_to_dict(service_price) -> dict:
    return {
        'id': service_price.id,
        'service_name': service_price.service_name,
        'description': service_price.description,
        'base_price': to_json_safe(service_price.base_price),
        'insurance_price': to_json_safe(service_price.insurance_price),
        'active': service_price.active,
        'created_at': to_json_safe(service_price.created_at),
        'updated_at': to_json_safe(service_price.updated_at),
    }


def audit_log_to_dict(entry) -> dict:
    try:
        details = json.loads(entry.details) if entry.details else None
    except ValueError:
        details = entry.details
    return {
        'id': entry.id,
        'action': entry.action.value,
        'resource_type': entry.resource_type,
        'resource_id': entry.resource_id,
        'details': details,
        'created_at': to_json_safe(entry.created_at),
    }

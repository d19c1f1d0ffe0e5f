import io
import logging
from dataclasses import asdict
from datetime import date
from decimal import Decimal
from enum import Enum

from flask import Flask, jsonify, request, send_file

from payrun.config.settings import DEBUG, SECRET_KEY
from payrun.exceptions import (
    InvariantViolation, NotFoundError, PayrollError, PersistenceError, ValidationError
)
from payrun.service import PayrollService

logger = logging.getLogger(__name__)

ERROR_STATUS = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (PersistenceError, 503),
    (InvariantViolation, 500),
]


def _json_value(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_value(v) for v in value]
    return value


def serialize(obj) -> dict:
    """Dataclass to a JSON-ready dict; dates as ISO strings, amounts stay in cents"""
    return _json_value(asdict(obj))


def _parse_date(data: dict, key: str, required: bool = True):
    value = data.get(key)
    if not value:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an ISO date (YYYY-MM-DD), got {value!r}") from None


def create_app(service: PayrollService = None) -> Flask:
    app = Flask(__name__)
    app.config['SECRET_KEY'] = SECRET_KEY
    app.config['DEBUG'] = DEBUG
    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max request size

    service = service or PayrollService()
    app.extensions['payroll_service'] = service

    @app.errorhandler(PayrollError)
    def handle_payroll_error(e):
        status = next((code for cls, code in ERROR_STATUS if isinstance(e, cls)), 500)
        if status >= 500:
            logger.error("Request failed: %s", e)
        return jsonify({'success': False, 'message': str(e), 'error': e.to_dict()}), status

    # ============================================================================
    # Payroll Runs
    # ============================================================================

    @app.route('/api/payroll-runs', methods=['POST'])
    def start_payroll_run():
        """Start and process a payroll run"""
        data = request.get_json(silent=True) or {}
        run = service.start_payroll_run(
            pay_period_start=_parse_date(data, 'pay_period_start'),
            pay_period_end=_parse_date(data, 'pay_period_end'),
            pay_date=_parse_date(data, 'pay_date'),
            run_number=data.get('run_number'),
            department=data.get('department'),
            earnings=data.get('earnings'),
        )
        return jsonify({
            'success': True,
            'message': f'Payroll run {run.run_number} {run.status.value}',
            'run': serialize(run)
        }), 201

    @app.route('/api/payroll-runs')
    def list_payroll_runs():
        """List payroll runs, newest first"""
        status = request.args.get('status')
        try:
            runs = service.list_runs(status)
        except ValueError:
            raise ValidationError(f"Unknown run status: {status}") from None
        return jsonify({'success': True, 'runs': [serialize(r) for r in runs]})

    @app.route('/api/payroll-runs/<int:run_id>')
    def get_payroll_run(run_id):
        return jsonify({'success': True, 'run': serialize(service.get_run(run_id))})

    @app.route('/api/payroll-runs/<int:run_id>/resume', methods=['POST'])
    def resume_payroll_run(run_id):
        """Finish a run left in draft or processing"""
        run = service.resume_payroll_run(run_id)
        return jsonify({
            'success': True,
            'message': f'Payroll run {run.run_number} {run.status.value}',
            'run': serialize(run)
        })

    @app.route('/api/payroll-runs/<int:run_id>/payslips')
    def list_run_payslips(run_id):
        payslips = service.list_payslips(run_id)
        return jsonify({'success': True, 'payslips': [serialize(p) for p in payslips]})

    @app.route('/api/payroll-runs/<int:run_id>/bank-export', methods=['POST'])
    def generate_bank_export(run_id):
        """Generate and download the bank payment file"""
        data = request.get_json(silent=True) or {}
        export = service.generate_bank_export(run_id, data.get('export_type', 'ACH'))
        response = send_file(
            io.BytesIO(export.content),
            mimetype=export.mime_type,
            as_attachment=True,
            download_name=export.file_name
        )
        response.headers['X-Export-Batch-Id'] = str(export.batch_id)
        response.headers['X-Total-Amount'] = str(export.total_amount)
        response.headers['X-Total-Transactions'] = str(export.total_transactions)
        response.headers['X-Skipped-Employees'] = ','.join(export.skipped_for_export)
        return response

    @app.route('/api/payroll-runs/<int:run_id>/register')
    def download_register(run_id):
        """Download the run register workbook"""
        filepath = service.generate_register(run_id)
        return send_file(filepath, as_attachment=True)

    # ============================================================================
    # Payslips, Preview, Employees
    # ============================================================================

    @app.route('/api/payslips/<int:payslip_id>/workbook')
    def download_payslip(payslip_id):
        filepath = service.generate_payslip_workbook(payslip_id)
        return send_file(filepath, as_attachment=True)

    @app.route('/api/payroll/preview')
    def preview_payroll():
        """Totals for the compensation in effect on pay_date, without a run"""
        pay_date = _parse_date(request.args, 'pay_date', required=False)
        preview = service.preview_payroll(pay_date, request.args.get('department'))
        return jsonify({'success': True, 'preview': preview.to_dict()})

    @app.route('/api/employees')
    def get_employees():
        """Get list of employees"""
        employees = service.list_employees(request.args.get('department'))
        return jsonify({'success': True, 'employees': [serialize(e) for e in employees]})

    return app

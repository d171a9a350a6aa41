from flask import Blueprint, render_template, request, redirect, url_for, flash, g
from ..auth import admin_required, check_csrf
from ..backend import BackendError
from ..models import OvertimeRecord, Profile
from ..utils import redirect_back
from ..utils.aggregation import filter_records, monthly_total, parse_month_filter
from ..utils.audit import log_audit_event
from ..utils.validators import validate_employee_input

admin_bp = Blueprint('admin', __name__)


@admin_bp.route('/overtime')
@admin_required
def overtime():
    """全従業員の残業記録（検索・月フィルター付き）"""
    search = request.args.get('search', '').strip()
    month = request.args.get('month', '').strip()

    if month and parse_month_filter(month) is None:
        flash("Mês inválido (use AAAA-MM)", "warning")
        month = ''

    records = []
    try:
        records = OvertimeRecord.get_all_with_profiles()
    except BackendError as e:
        flash(f"Erro ao carregar registros: {e.message}", "danger")

    return render_template(
        'admin_overtime.html',
        context=g.session_context,
        records=filter_records(records, search, month),
        monthly_total=monthly_total(records),
        search=search,
        month=month,
    )


@admin_bp.route('/employees')
@admin_required
def employees():
    """従業員管理"""
    employee_list = []
    try:
        employee_list = Profile.get_employees()
    except BackendError as e:
        flash(f"Erro ao carregar funcionários: {e.message}", "danger")

    return render_template('admin_employees.html', context=g.session_context, employees=employee_list)


@admin_bp.route('/employees/create', methods=['POST'])
@admin_required
def create_employee():
    """従業員の登録"""
    if not check_csrf():
        flash("Requisição inválida", "danger")
        return redirect(url_for('admin.employees'))

    full_name = request.form.get('full_name', '').strip()
    username = request.form.get('username', '').strip().lower()
    password = request.form.get('password', '')

    is_valid, message = validate_employee_input(full_name, username, password)
    if not is_valid:
        flash(message, "danger")
        return redirect(url_for('admin.employees'))

    try:
        Profile.create_employee(full_name, username, password)
    except BackendError as e:
        flash(f"Erro ao adicionar funcionário: {e.message}", "danger")
        return redirect(url_for('admin.employees'))

    context = g.session_context
    log_audit_event("employee_created", context.user_id, context.display_name, f"Created: {username}")
    flash(f"Funcionário adicionado! {full_name} foi cadastrado com sucesso.", "success")
    return redirect(url_for('admin.employees'))


@admin_bp.route('/employees/<user_id>/delete', methods=['POST'])
@admin_required
def delete_employee(user_id):
    """従業員の削除（認証アカウントも削除される）"""
    if not check_csrf():
        flash("Requisição inválida", "danger")
        return redirect(url_for('admin.employees'))

    context = g.session_context
    if user_id == context.user_id:
        flash("Você não pode remover a si mesmo", "danger")
        return redirect(url_for('admin.employees'))

    try:
        profile = Profile.get_by_id(user_id)
        if not profile:
            flash("Funcionário não encontrado", "danger")
            return redirect(url_for('admin.employees'))
        Profile.delete(user_id)
    except BackendError as e:
        flash(f"Erro ao remover funcionário: {e.message}", "danger")
        return redirect(url_for('admin.employees'))

    name = profile.get('full_name') or profile.get('username')
    log_audit_event("employee_deleted", context.user_id, context.display_name, f"Deleted: {name}")
    flash(f"Funcionário removido. {name} foi removido do sistema.", "success")
    return redirect(url_for('admin.employees'))


@admin_bp.route('/')
@admin_required
def index():
    """管理者トップ"""
    return redirect_back('admin.overtime')

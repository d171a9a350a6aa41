from flask import Blueprint, render_template, request, redirect, url_for, flash, g, jsonify
from ..auth import login_required, check_csrf
from ..backend import BackendError
from ..models import OvertimeRecord
from ..utils.aggregation import monthly_total
from ..utils.audit import log_audit_event
from ..utils.datetime_helpers import calculate_hours, format_hours, normalize_time_str, start_of_month
from ..utils.validators import validate_overtime_input, sanitize_text_input, is_valid_time, MAX_JUSTIFICATION_LENGTH

overtime_bp = Blueprint('overtime', __name__)


def render_dashboard(context, form=None):
    """従業員ダッシュボードを描画（記録一覧と当月合計）"""
    records = []
    total = 0
    try:
        records = OvertimeRecord.get_by_user(context.user_id)
        total = monthly_total(OvertimeRecord.get_hours_since(start_of_month(), context.user_id))
    except BackendError as e:
        flash(f"Erro ao carregar registros: {e.message}", "danger")

    return render_template(
        'employee_dashboard.html',
        context=context,
        records=records,
        monthly_total=total,
        form=form or {},
    )


@overtime_bp.route('/')
@login_required
def index():
    """従業員ダッシュボード"""
    return render_dashboard(g.session_context)


@overtime_bp.route('/create', methods=['POST'])
@login_required
def create():
    """残業記録の登録"""
    if not check_csrf():
        flash("Requisição inválida", "danger")
        return redirect(url_for('overtime.index'))

    context = g.session_context
    form = {
        'date': request.form.get('date', '').strip(),
        'start_time': request.form.get('start_time', '').strip(),
        'end_time': request.form.get('end_time', '').strip(),
        'justification': request.form.get('justification', ''),
    }

    is_valid, message = validate_overtime_input(
        form['date'], form['start_time'], form['end_time'], form['justification']
    )
    if not is_valid:
        flash(message, "danger")
        return render_dashboard(context, form), 400

    justification = sanitize_text_input(form['justification'], MAX_JUSTIFICATION_LENGTH)

    try:
        record = OvertimeRecord.create(
            context.user_id, form['date'], form['start_time'], form['end_time'], justification
        )
    except BackendError as e:
        flash(f"Erro ao registrar: {e.message}", "danger")
        return render_dashboard(context, form), 400

    total_hours = record['total_hours'] if record else calculate_hours(form['start_time'], form['end_time'])
    log_audit_event("overtime_created", context.user_id, context.display_name,
                    f"{form['date']} {format_hours(total_hours)}h")
    flash(f"Hora extra registrada! {format_hours(total_hours)} horas adicionadas com sucesso.", "success")
    return redirect(url_for('overtime.index'))


@overtime_bp.route('/<record_id>/delete', methods=['POST'])
@login_required
def delete(record_id):
    """残業記録の削除"""
    if not check_csrf():
        flash("Requisição inválida", "danger")
        return redirect(url_for('overtime.index'))

    context = g.session_context
    try:
        deleted = OvertimeRecord.delete(record_id, context.user_id)
    except BackendError as e:
        flash(f"Erro ao excluir: {e.message}", "danger")
        return redirect(url_for('overtime.index'))

    if deleted:
        log_audit_event("overtime_deleted", context.user_id, context.display_name, f"Record: {record_id}")
        flash("Registro excluído. O registro foi removido com sucesso.", "success")
    else:
        flash("Registro não encontrado", "warning")

    return redirect(url_for('overtime.index'))


@overtime_bp.route('/preview')
@login_required
def preview():
    """入力中の開始・終了時刻から合計時間を返す"""
    start_time = normalize_time_str(request.args.get('start_time', ''))
    end_time = normalize_time_str(request.args.get('end_time', ''))

    for value in (start_time, end_time):
        if value and not is_valid_time(value):
            return jsonify({'success': False, 'error': 'Invalid time'}), 400

    total_hours = calculate_hours(start_time, end_time)
    return jsonify({
        'success': True,
        'total_hours': total_hours,
        'display': format_hours(total_hours),
    })

"""
API Blueprint
Collects every route group under /api
"""

from flask import Blueprint, jsonify


def create_api_blueprint():
    """Create the single blueprint that serves all JSON endpoints"""

    api_bp = Blueprint('api', __name__, url_prefix='/api')

    @api_bp.route('/health')
    def health():
        return jsonify({'status': 'ok'}), 200

    # ===== REGISTER ACADEMIC STRUCTURE ROUTES =====
    from academic_routes import create_academic_routes
    create_academic_routes(api_bp)

    # ===== REGISTER PEOPLE ROUTES =====
    from people_routes import create_people_routes
    create_people_routes(api_bp)

    # ===== REGISTER STUDENT RECORD ROUTES =====
    from marks_routes import create_marks_routes
    create_marks_routes(api_bp)

    # ===== REGISTER ATTENDANCE ROUTES =====
    from attendance_routes import create_attendance_routes
    create_attendance_routes(api_bp)

    # ===== REGISTER FEE MANAGEMENT ROUTES =====
    from fee_routes import create_fee_routes
    create_fee_routes(api_bp)

    # ===== REGISTER ONLINE PAYMENT ROUTES =====
    from payment_routes import create_payment_routes
    create_payment_routes(api_bp)

    # ===== REGISTER NOTIFICATION ROUTES =====
    from notification_routes import create_notification_routes
    create_notification_routes(api_bp)

    # ===== REGISTER TEACHER LEAVE ROUTES =====
    from leave_routes import create_leave_routes
    create_leave_routes(api_bp)

    return api_bp

"""Notification API."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from attendance_engine.services.notification_service import NotificationService
from attendance_engine.utils.decorators import get_current_user, login_required
from attendance_engine.utils.helpers import success_response, error_response

notifications_bp = Blueprint('notifications', __name__)

@notifications_bp.route('', methods=['GET'])
@jwt_required()
@login_required
def list_notifications():
    """Notifications for the caller, newest first."""
    unread_only = request.args.get('unread', 'false').lower() == 'true'
    notifications = NotificationService.for_user(get_current_user().id, unread_only=unread_only)
    return success_response(data={
        'notifications': [n.to_dict() for n in notifications],
        'count': len(notifications)
    })

@notifications_bp.route('/<int:notification_id>/read', methods=['PATCH'])
@jwt_required()
@login_required
def mark_read(notification_id):
    if not NotificationService.mark_read(get_current_user().id, notification_id):
        return error_response("Notification not found", 404, 'NOT_FOUND')
    return success_response(message='Notification marked as read')

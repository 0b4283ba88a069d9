from flask import Blueprint, current_app, jsonify, request

from loginguard.schemas import ClientInfo
from loginguard.services.geo_ip import extract_client_ip

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def client_info_from_request(req):
    headers = req.headers
    return ClientInfo(
        ip_address=extract_client_ip(req),
        user_agent=headers.get('User-Agent') or 'unknown',
        accept_language=headers.get('Accept-Language') or 'unknown',
        referer=headers.get('Referer') or 'direct',
        timezone=headers.get('X-Timezone') or 'unknown',
        attestation_token=headers.get(current_app.config['ATTESTATION_HEADER']),
    )


@auth_bp.route('/login', methods=['POST'])
def login():
    payload = request.get_json(silent=True)
    outcome = current_app.login_orchestrator.handle(payload, client_info_from_request(request))

    response = jsonify(outcome.body)
    response.status_code = outcome.status
    if outcome.status == 200 and outcome.session_token:
        config = current_app.config
        response.set_cookie(
            config['LOGIN_COOKIE_NAME'],
            outcome.session_token,
            max_age=config['LOGIN_COOKIE_MAX_AGE'],
            path='/',
            httponly=True,
            samesite='Lax',
            secure=config['LOGIN_COOKIE_SECURE'],
        )
    return response


@auth_bp.route('/logout', methods=['POST'])
def logout():
    response = jsonify({'success': True})
    response.delete_cookie(current_app.config['LOGIN_COOKIE_NAME'], path='/',
                           httponly=True, samesite='Lax',
                           secure=current_app.config['LOGIN_COOKIE_SECURE'])
    return response

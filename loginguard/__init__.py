import atexit
from concurrent.futures import ThreadPoolExecutor

from flask import Flask
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _app_context_wrapper(app):
    def wrap(call):
        def run():
            with app.app_context():
                return call()
        return run
    return wrap


def build_orchestrator(app, credential_verifier=None, captcha_service=None,
                       attestation_service=None, event_log=None, profile_store=None):
    """按配置组装登录流程；任一外部协作者都可以传入替身。"""
    from loginguard.rba import (AccountReconciler, ChallengeGate, LoginOrchestrator,
                                NoveltyDetector, RiskScorer, RiskThresholds)
    from loginguard.services import (AuditRecorder, HCaptchaClient, LocalCredentialVerifier,
                                     SignedTokenAttestation, SqlEventLogStore, SqlProfileStore)

    config = app.config
    event_log = event_log or SqlEventLogStore(app)
    profile_store = profile_store or SqlProfileStore(app)
    credential_verifier = credential_verifier or LocalCredentialVerifier(config['SECRET_KEY'])
    captcha_service = captcha_service or HCaptchaClient(
        config['HCAPTCHA_SECRET_KEY'], config['HCAPTCHA_VERIFY_URL'], config['HCAPTCHA_TIMEOUT'])
    attestation_service = attestation_service or SignedTokenAttestation(
        config['SECRET_KEY'], config['ATTESTATION_MAX_AGE'])

    executor = None
    wrap = None
    workers = config.get('LOGIN_QUERY_WORKERS', 0)
    if workers > 1:
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='LoginQuery')
        atexit.register(executor.shutdown, wait=False)
        wrap = _app_context_wrapper(app)

    return LoginOrchestrator(
        scorer=RiskScorer(event_log, RiskThresholds.from_config(config), executor=executor, wrap=wrap),
        gate=ChallengeGate(captcha_service, attestation_service,
                           enforce_attestation=config['ENFORCE_ATTESTATION']),
        verifier=credential_verifier,
        reconciler=AccountReconciler(profile_store, config['PROFILE_COMPLETE_THRESHOLD']),
        # detect 本身由编排器提交到线程池，内部查询不能再占用同一个池
        novelty=NoveltyDetector(event_log),
        recorder=AuditRecorder(event_log),
        executor=executor,
        wrap=wrap,
        teardown=[event_log, profile_store],
    )


def create_app(config_class='loginguard.config.Config', **collaborators):
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)

    with app.app_context():
        from loginguard.routes import auth_bp
        app.register_blueprint(auth_bp)

        from loginguard import models  # noqa: F401
        db.create_all()

        app.login_orchestrator = build_orchestrator(app, **collaborators)

    return app

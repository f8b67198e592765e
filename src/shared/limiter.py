from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Los endpoints de generación llaman al servicio externo y declaran su propio límite.
# storage_uri="memory://" es adecuado para despliegues de una sola instancia
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per day", "200 per hour"],
    storage_uri="memory://"
)


def init_limiter(app):
    """Asocia el limitador a la aplicación; RATELIMIT_ENABLED=False lo desactiva (pruebas)"""
    app.config.setdefault("RATELIMIT_ENABLED", True)
    limiter.init_app(app)
    return limiter

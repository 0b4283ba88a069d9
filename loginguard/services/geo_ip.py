import geoip2.database
from flask import current_app  # 使用current_app替代直接导入app


def get_geo_location(ip_address):
    path = current_app.config.get('GEOIP_DATABASE_PATH')
    if not path:
        return None
    try:
        with geoip2.database.Reader(path) as reader:
            response = reader.city(ip_address)
            return {
                'country': response.country.name,
                'city': response.city.name,
                'latitude': response.location.latitude,
                'longitude': response.location.longitude
            }
    except Exception as e:
        current_app.logger.error(f"GeoIP lookup failed: {str(e)}")
        return None


def extract_client_ip(request):
    """从代理头中取真实客户端 IP。"""
    for header in ('X-Forwarded-For', 'X-Real-IP', 'CF-Connecting-IP', 'X-Client-IP'):
        value = request.headers.get(header)
        if value:
            ip = value.split(',')[0].strip()
            if ip:
                return ip
    return request.remote_addr or 'unknown'

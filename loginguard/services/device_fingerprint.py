import hashlib

FINGERPRINT_LENGTH = 24


def extract_browser_info(user_agent):
    ua = (user_agent or '').lower()

    browser = 'unknown'
    if 'chrome' in ua:
        browser = 'chrome'
    elif 'firefox' in ua:
        browser = 'firefox'
    elif 'safari' in ua:
        browser = 'safari'
    elif 'edge' in ua:
        browser = 'edge'

    os_name = 'unknown'
    if 'windows' in ua:
        os_name = 'windows'
    elif 'mac' in ua:
        os_name = 'macos'
    elif 'linux' in ua:
        os_name = 'linux'
    elif 'android' in ua:
        os_name = 'android'
    elif 'ios' in ua:
        os_name = 'ios'

    device = 'desktop'
    if 'mobile' in ua:
        device = 'mobile'
    elif 'tablet' in ua:
        device = 'tablet'

    return {'browser': browser, 'os': os_name, 'device': device}


def derive_fingerprint(user_agent, ip_address, accept_language):
    """由 UA、IP、语言及 UA 中粗粒度的浏览器/系统/设备类型生成指纹。

    相同输入始终得到相同结果，只用作分桶键，不能防伪造。
    """
    user_agent = user_agent or 'unknown'
    ip_address = ip_address or 'unknown'
    accept_language = accept_language or 'unknown'
    info = extract_browser_info(user_agent)
    client_info = [
        user_agent,
        ip_address,
        accept_language,
        info['browser'],
        info['os'],
        info['device'],
    ]
    fingerprint_str = '|'.join(client_info)
    return hashlib.sha256(fingerprint_str.encode()).hexdigest()[:FINGERPRINT_LENGTH]

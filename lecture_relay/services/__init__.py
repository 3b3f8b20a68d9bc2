"""
lecture_relay.services
~~~~~~~~~~~~~~~~~~~~~~

会话中继的领域服务：注册表、房间、广播器、课件存储。
"""

"""
cli - bgov 명령줄 인터페이스

    cli/
    ├── app.py      # Click 그룹 및 명령 (validate, plan, apply, status, schedule, permissions)
    └── i18n/       # 한국어/영어 메시지
"""

from app.policydesk import create_app

app = create_app()

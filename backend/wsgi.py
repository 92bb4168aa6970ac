from smerp import create_app

app = create_app()

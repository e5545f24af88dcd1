from pingtrack import create_app, db, socketio

app = create_app()

if __name__ == '__main__':
    if app.config.get('LOG_TO_DATABASE'):
        import pingtrack.models  # noqa: F401
        with app.app_context():
            db.create_all()
    scheduler = app.extensions['ping_scheduler']
    scheduler.start()
    try:
        # Use SocketIO server to enable websockets in dev
        socketio.run(app, debug=True, use_reloader=False)
    finally:
        scheduler.stop()

from route_limits.core.app_factory import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    # Logging is configured by create_app(); keep uvicorn from replacing it
    uvicorn.run(app, host="0.0.0.0", port=8000, log_config=None)

from imgapi_cli.cli.deployments import main

if __name__ == "__main__":
    raise SystemExit(main())

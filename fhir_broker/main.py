from fhir_broker import application


def main() -> None:
    application.run()


if __name__ == "__main__":
    main()

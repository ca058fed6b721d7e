from hcmachine import driver_factory



def main():
    # Example usage of the driver factory
    hetzner_config = {
        "access_token": "EXAMPLEhcloudTOKENxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxx",
        "image": "debian-12",
        "location": "nbg1",
        "server_type": "cx22",
    }

    driver = driver_factory("hetzner", "example-machine", hetzner_config)
    driver.pre_create_check()
    driver.create()

    print(f"Machine state: {driver.get_state()}")
    print(f"Docker URL: {driver.get_url()}")

if __name__ == "__main__":
    main()

from setuptools import setup, find_packages


def main():
    setup(
        name="tclc",
        version="0.2.0",
        description="Compile OpenCL kernel sources and report build errors",
        author="Nicolai Waniek",
        license="MIT",
        packages=find_packages(include=["tclc", "tclc.*"]),
        python_requires=">=3.8",
        install_requires=["pyopencl"],
        extras_require={"test": ["pytest"]},
        entry_points={
            "console_scripts": ["tclc=tclc.driver:main"],
        },
    )


if __name__ == "__main__":
    main()

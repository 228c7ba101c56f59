from setuptools import setup, find_packages
from pathlib import Path

package_name = 'operand-lifecycle-operator'
description = (
    'A Kubernetes Operator that installs, updates and removes OLM operators '
    'on behalf of OperandRequest resources.'
)
author = 'Operand Lifecycle Operator developers'
license = 'Apache-2.0'
pypi_classifiers = [
    'Development Status :: 4 - Beta',
    'License :: OSI Approved :: Apache Software License',
    'Programming Language :: Python :: 3.10'
]
keywords = ['kubernetes', 'operator', 'olm']
readme = Path(__file__).parent / 'README.rst'

# Core dependencies
install_requires = [
    'kopf>=1.35',
    'kubernetes>=24.2.0',
    'structlog>=21.2.0',
]

# Test dependencies
tests_require = [
    'pytest>=7.0',
    'pyyaml>=5.4',
]
tests_require += install_requires

# Optional dependencies (like for dev)
extras_require = {
    'test': tests_require,
    # For development environments
    'dev': tests_require
}

# Setup-time dependencies
setup_requires = [
    'setuptools_scm',
]

setup(
    name=package_name,
    description=description,
    long_description=readme.read_text(),
    author=author,
    license=license,
    classifiers=pypi_classifiers,
    keywords=keywords,
    package_dir={'': 'src'},
    packages=find_packages(where='src', exclude=['docs', 'tests']),
    python_requires='>=3.10',
    install_requires=install_requires,
    tests_require=tests_require,
    setup_requires=setup_requires,
    extras_require=extras_require,
    use_scm_version={'fallback_version': '0.0.0'},
    include_package_data=True
)

"""
Packaging script for PyPI.
"""
import setuptools

setuptools.setup(
	name='ciphel',
	author='CipherPool',
	version='0.1.0',
	packages=['ciphel', "ciphel.adapters", ],
	entry_points={
		'console_scripts': ["ciphel = ciphel.cmdline:main"],
	},
	license='MIT',
	description='Execution run-time for Ciphel, the energy-metered scripting language of CipherPool',
	long_description=open('README.md').read(),
	long_description_content_type="text/markdown",
	classifiers=[
		"Programming Language :: Python :: 3.9",
		"License :: OSI Approved :: MIT License",
		"Operating System :: OS Independent",
		"Development Status :: 3 - Alpha",
		"Intended Audience :: Developers",
		"Topic :: Software Development :: Interpreters",
		"Topic :: Games/Entertainment",
		"Environment :: Console",
    ],
	python_requires='>=3.9',
	install_requires=[
		"booze-tools>=0.6.2.1",
	],
	extras_require={
		"test": ["pytest"],
	},
)

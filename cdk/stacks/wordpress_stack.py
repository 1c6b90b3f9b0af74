import json

from aws_cdk import (
    Stack,
    Duration,
    RemovalPolicy,
    Tags,
    aws_certificatemanager as acm,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_ecs_patterns as ecs_patterns,
    aws_efs as efs,
    aws_iam as iam,
    aws_logs as logs,
    aws_rds as rds,
    aws_route53 as route53,
    aws_s3 as s3,
    aws_secretsmanager as secretsmanager,
    aws_ssm as ssm,
    CfnOutput,
)
from constructs import Construct

from stacks.config import WordpressConfig

EFS_VOLUME_NAME = "efs"
EXEC_S3_KEY_PREFIX = "exec-output"


class WordpressStack(Stack):
    """
    WordPress on Fargate behind an HTTPS load balancer, with Aurora MySQL
    serverless for the database and EFS for wp-content.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: WordpressConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        site = config.site
        db = config.database

        Tags.of(self).add("Project", config.environment.project_tag)

        # ------------------------------------------------------------------ #
        # DNS + TLS                                                          #
        # ------------------------------------------------------------------ #

        domain_zone = route53.HostedZone.from_lookup(
            self,
            "DomainZone",
            domain_name=site.domain_name,
            private_zone=False,
        )

        certificate = acm.Certificate(
            self,
            "Cert",
            domain_name=domain_zone.zone_name,
            subject_alternative_names=[f"*.{domain_zone.zone_name}"],
            validation=acm.CertificateValidation.from_dns(domain_zone),
        )

        # ------------------------------------------------------------------ #
        # Log groups                                                         #
        # ------------------------------------------------------------------ #

        site_log_group = logs.LogGroup(
            self,
            "CdkLogGroup",
            log_group_name=site.log_group_name,
            removal_policy=RemovalPolicy.DESTROY,
            retention=logs.RetentionDays.ONE_WEEK,
        )

        # ECS Exec session transcripts
        exec_log_group = logs.LogGroup(self, "LogGroup")

        # ------------------------------------------------------------------ #
        # Network                                                            #
        # ------------------------------------------------------------------ #

        self.vpc = ec2.Vpc(
            self,
            "ClusterVpc",
            ip_addresses=ec2.IpAddresses.cidr("10.0.0.0/16"),
            nat_gateways=0,
            max_azs=2,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=18,
                ),
            ],
        )

        # Shared by cluster members and the file system; all traffic inside the VPC
        core_sg = ec2.SecurityGroup(
            self,
            "VpcSecurityGroup",
            vpc=self.vpc,
            allow_all_outbound=False,
            security_group_name="core",
        )
        vpc_peer = ec2.Peer.ipv4(self.vpc.vpc_cidr_block)
        core_sg.add_ingress_rule(vpc_peer, ec2.Port.all_traffic())
        core_sg.add_egress_rule(vpc_peer, ec2.Port.all_traffic())

        # ------------------------------------------------------------------ #
        # Database: Aurora MySQL serverless                                  #
        # ------------------------------------------------------------------ #

        db_secret = secretsmanager.Secret(
            self,
            "dbCredentialsSecret",
            secret_name=db.secret_name,
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template=json.dumps({"username": db.username}),
                exclude_punctuation=True,
                include_space=False,
                generate_string_key="password",
            ),
        )

        self.database = rds.DatabaseCluster(
            self,
            "AuroraServerless",
            engine=rds.DatabaseClusterEngine.aurora_mysql(
                version=rds.AuroraMysqlEngineVersion.VER_3_08_0,
            ),
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            credentials=rds.Credentials.from_secret(db_secret, db.username),
            writer=rds.ClusterInstance.serverless_v2("Writer", publicly_accessible=False),
            serverless_v2_min_capacity=db.min_capacity,
            serverless_v2_max_capacity=db.max_capacity,
            # Aurora only pauses a v2 cluster whose min capacity is 0 ACU
            serverless_v2_auto_pause_duration=Duration.minutes(db.auto_pause_minutes),
            enable_data_api=True,
            default_database_name=db.name,
            deletion_protection=False,
            removal_policy=RemovalPolicy.DESTROY,
        )

        # ------------------------------------------------------------------ #
        # ECS cluster with ECS Exec auditing                                 #
        # ------------------------------------------------------------------ #

        exec_bucket = s3.Bucket(
            self,
            "EcsExecBucket",
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True,
        )

        self.cluster = ecs.Cluster(
            self,
            "Cluster",
            cluster_name=site.cluster_name,
            container_insights=True,
            vpc=self.vpc,
            execute_command_configuration=ecs.ExecuteCommandConfiguration(
                logging=ecs.ExecuteCommandLogging.OVERRIDE,
                log_configuration=ecs.ExecuteCommandLogConfiguration(
                    cloud_watch_log_group=exec_log_group,
                    s3_bucket=exec_bucket,
                    s3_key_prefix=EXEC_S3_KEY_PREFIX,
                ),
            ),
        )

        # ------------------------------------------------------------------ #
        # Task definition                                                    #
        # ------------------------------------------------------------------ #

        task = ecs.FargateTaskDefinition(
            self,
            "Task",
            cpu=config.container.cpu,
            memory_limit_mib=config.container.memory_mib,
            execution_role=self._create_task_execution_role(),
            task_role=self._create_task_role(),
        )
        container = task.add_container(
            "wordpress",
            container_name="wordpress",
            image=ecs.ContainerImage.from_registry(config.container.image),
            secrets={
                "WORDPRESS_DB_PASSWORD": ecs.Secret.from_secrets_manager(db_secret, "password"),
                "WORDPRESS_DB_HOST": ecs.Secret.from_secrets_manager(db_secret, "host"),
                "WORDPRESS_DB_USER": ecs.Secret.from_secrets_manager(db_secret, "username"),
            },
            environment={
                "WORDPRESS_DB_NAME": db.name,
            },
            port_mappings=[ecs.PortMapping(container_port=config.container.port)],
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix="cdk",
                log_group=site_log_group,
            ),
        )

        exec_log_group.grant_write(task.task_role)

        # ------------------------------------------------------------------ #
        # Public HTTPS service                                               #
        # ------------------------------------------------------------------ #

        health = config.health_check
        self.service = ecs_patterns.ApplicationLoadBalancedFargateService(
            self,
            "WPService",
            cluster=self.cluster,
            task_definition=task,
            certificate=certificate,
            assign_public_ip=True,
            domain_name=f"{site.host_prefix}.{domain_zone.zone_name}",
            domain_zone=domain_zone,
            platform_version=ecs.FargatePlatformVersion.VERSION1_4,
            redirect_http=True,
            open_listener=False,
            health_check_grace_period=Duration.seconds(health.grace_period_seconds),
            enable_execute_command=True,
        )

        self.service.target_group.configure_health_check(
            path=health.path,
            healthy_http_codes=health.healthy_http_codes,
        )

        for cidr, description in site.allowed_cidrs:
            peer = ec2.Peer.ipv4(cidr)
            self.service.load_balancer.connections.allow_from(peer, ec2.Port.tcp(80), description)
            self.service.load_balancer.connections.allow_from(peer, ec2.Port.tcp(443), description)

        self.database.connections.allow_default_port_from(
            self.service.service, "WordPress tasks"
        )

        # ------------------------------------------------------------------ #
        # Autoscaling                                                        #
        # ------------------------------------------------------------------ #

        scaling = config.scaling
        task_count = self.service.service.auto_scale_task_count(
            min_capacity=scaling.min_tasks,
            max_capacity=scaling.max_tasks,
        )
        task_count.scale_on_memory_utilization(
            "WpScaleByMemory",
            target_utilization_percent=scaling.memory_target_percent,
        )
        task_count.scale_on_cpu_utilization(
            "WpScaleByCpu",
            target_utilization_percent=scaling.cpu_target_percent,
        )

        # ------------------------------------------------------------------ #
        # Shared storage, kept when the stack is deleted                     #
        # ------------------------------------------------------------------ #

        self.file_system = efs.FileSystem(
            self,
            "WPVolume",
            vpc=self.vpc,
            file_system_name=config.storage.file_system_name,
            performance_mode=efs.PerformanceMode.GENERAL_PURPOSE,
            security_group=core_sg,
            encrypted=True,
            removal_policy=RemovalPolicy.RETAIN,
        )

        task.add_volume(
            name=EFS_VOLUME_NAME,
            efs_volume_configuration=ecs.EfsVolumeConfiguration(
                file_system_id=self.file_system.file_system_id,
                transit_encryption="ENABLED",
            ),
        )
        container.add_mount_points(
            ecs.MountPoint(
                container_path=config.storage.mount_path,
                source_volume=EFS_VOLUME_NAME,
                read_only=False,
            )
        )

        # Store names for the ecs_exec_service helper
        ssm.StringParameter(
            self,
            "ClusterNameParam",
            parameter_name="/wordpress/cluster-name",
            string_value=self.cluster.cluster_name,
        )
        ssm.StringParameter(
            self,
            "ServiceNameParam",
            parameter_name="/wordpress/service-name",
            string_value=self.service.service.service_name,
        )

        # ------------------------------------------------------------------ #
        # Outputs                                                            #
        # ------------------------------------------------------------------ #

        CfnOutput(
            self,
            "EcsExecCommand",
            value=f"ecs_exec_service {self.cluster.cluster_name} {self.service.service.service_name}",
        )
        CfnOutput(
            self,
            "SiteUrl",
            value=f"https://{site.host_prefix}.{domain_zone.zone_name}",
            description="Public URL of the WordPress site",
        )
        CfnOutput(
            self,
            "LoadBalancerDns",
            value=self.service.load_balancer.load_balancer_dns_name,
        )
        CfnOutput(self, "DatabaseEndpoint", value=self.database.cluster_endpoint.hostname)
        CfnOutput(self, "FileSystemId", value=self.file_system.file_system_id)

    def _create_task_execution_role(self) -> iam.Role:
        return iam.Role(
            self,
            "TaskExecRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AmazonECSTaskExecutionRolePolicy"
                ),
            ],
        )

    def _create_task_role(self) -> iam.Role:
        # Opens the SSM channel used by ECS Exec
        role = iam.Role(
            self,
            "TaskRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
        )
        role.add_to_policy(
            iam.PolicyStatement(
                actions=[
                    "ssmmessages:CreateControlChannel",
                    "ssmmessages:CreateDataChannel",
                    "ssmmessages:OpenControlChannel",
                    "ssmmessages:OpenDataChannel",
                ],
                resources=["*"],
            )
        )
        return role
